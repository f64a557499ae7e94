"""Memory-derived handler scores.

Scoring formula:
    memory_match_score(handler, ctx):
        - no context, or insufficient context          -> 0.5
        - episodes attributed to handler exist         -> successful / total
        - otherwise, effective procedures for handler  -> min(1.0, count * 0.2)
        - otherwise                                    -> 0.5

    topic_score(handler, topic, ctx):
        - no context, or no topic on the request       -> 0.5
        - mean satisfaction of the handler's episodes with that topic,
          ignoring episodes without a satisfaction score
        - no such scored episodes                      -> 0.5

Both sub-scores are exposed separately; `score()` returns them together.

Determinism:
    Pure functions of their inputs.
"""

from dataclasses import dataclass

from budgetsphere.core.routing_types import Request, clamp_unit
from budgetsphere.memory.memory_context import MemoryContext


NEUTRAL_SCORE = 0.5
PROCEDURE_SCORE_STEP = 0.2


@dataclass(frozen=True)
class HistoricalScore:
    memory: float
    topic: float


def memory_match_score(handler_name: str, memory_context: MemoryContext | None) -> float:
    """Success ratio of the handler's episodes, with a procedure fallback."""
    if memory_context is None or not memory_context.has_sufficient_context():
        return NEUTRAL_SCORE

    attributed = [e for e in memory_context.episodes if e.handler_name == handler_name]
    if attributed:
        successful = sum(1 for e in attributed if e.success)
        return clamp_unit(successful / len(attributed))

    effective_procedures = sum(
        1
        for p in memory_context.procedures
        if p.handler_pattern == handler_name and p.is_effective
    )
    procedure_score = min(1.0, effective_procedures * PROCEDURE_SCORE_STEP)
    if procedure_score == 0:
        return NEUTRAL_SCORE
    return procedure_score


def topic_score(
    handler_name: str,
    topic: str | None,
    memory_context: MemoryContext | None,
) -> float:
    """Mean recorded satisfaction of the handler on the request's topic."""
    if memory_context is None or topic is None:
        return NEUTRAL_SCORE

    satisfactions = [
        e.satisfaction
        for e in memory_context.episodes
        if e.handler_name == handler_name
        and e.topic == topic
        and e.satisfaction is not None
    ]
    if not satisfactions:
        return NEUTRAL_SCORE
    return clamp_unit(sum(satisfactions) / len(satisfactions))


def score(handler_name: str, request: Request, memory_context: MemoryContext | None) -> HistoricalScore:
    return HistoricalScore(
        memory=memory_match_score(handler_name, memory_context),
        topic=topic_score(handler_name, request.effective_topic, memory_context),
    )
