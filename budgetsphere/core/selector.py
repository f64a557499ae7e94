"""Score aggregation and deterministic handler selection.

Scoring formula (per candidate):
    total = clamp(0.4 * static_confidence
                  + 0.3 * capability_match
                  + 0.2 * historical_match
                  + 0.1 * topic_score)

Selection:
    1. Empty candidate set -> `NoCapableHandler`.
    2. Every candidate is scored, including under an explicit override, so the
       decision always reports alternatives.
    3. Ranking key is `(-total, handler_name)`: highest total wins and exact ties
       resolve to the lexicographically smallest name. Totals are compared after
       rounding to 9 decimals so float summation noise cannot break engineered ties.
    4. A preferred-handler hint naming a candidate wins outright with confidence
       1.0 and reason "explicit override".

Reason text is descriptive only and never feeds back into the numbers.
"""

import asyncio
import logging
from collections.abc import Sequence

from budgetsphere.core import historical_scorer
from budgetsphere.core.errors import NoCapableHandler
from budgetsphere.core.routing_types import (
    CAPABILITY_MATCH_WEIGHT,
    HISTORICAL_MATCH_WEIGHT,
    STATIC_CONFIDENCE_WEIGHT,
    TERM_LABELS,
    TOPIC_SCORE_WEIGHT,
    CandidateScore,
    Request,
    RoutingDecision,
    clamp_unit,
)
from budgetsphere.memory.memory_context import MemoryContext
from budgetsphere.nlp import capability_matcher


logger = logging.getLogger(__name__)

OVERRIDE_CONFIDENCE = 1.0
OVERRIDE_REASON = "explicit override"
TIE_PRECISION = 9


def _static_confidence(handler, request: Request) -> float:
    try:
        return handler.confidence(request)
    except Exception:
        logger.exception("static_confidence failed for handler %s", handler.name)
        return 0.0


def score_candidate(
    handler,
    request: Request,
    memory_context: MemoryContext | None,
) -> CandidateScore:
    """Compute the full score breakdown for one candidate handler."""
    static = _static_confidence(handler, request)
    capability = clamp_unit(capability_matcher.score(handler, request))
    history = historical_scorer.score(handler.name, request, memory_context)

    total = clamp_unit(
        STATIC_CONFIDENCE_WEIGHT * static
        + CAPABILITY_MATCH_WEIGHT * capability
        + HISTORICAL_MATCH_WEIGHT * history.memory
        + TOPIC_SCORE_WEIGHT * history.topic
    )

    candidate = CandidateScore(
        handler_name=handler.name,
        static_confidence=static,
        capability_match=capability,
        historical_match=history.memory,
        topic_score=history.topic,
        total=total,
    )
    logger.debug(
        "score handler=%s static=%.3f capability=%.3f history=%.3f topic=%.3f total=%.4f",
        handler.name,
        static,
        capability,
        history.memory,
        history.topic,
        total,
    )
    return candidate


def rank_scores(scores: Sequence[CandidateScore]) -> list[CandidateScore]:
    return sorted(scores, key=lambda s: (-round(s.total, TIE_PRECISION), s.handler_name))


def build_reason(winner: CandidateScore, memory_context: MemoryContext | None) -> str:
    """Describe which weighted term contributed most to the winning total."""
    term = winner.dominant_term()
    contribution = winner.contributions()[term]
    reason = (
        f"Selected {winner.handler_name} because {TERM_LABELS[term]} dominated "
        f"({contribution:.2f} of {winner.total:.2f})"
    )
    if memory_context is not None and memory_context.has_sufficient_context():
        reason += "; memory context supports this choice"
    return reason


def decide(
    request: Request,
    scores: Sequence[CandidateScore],
    memory_context: MemoryContext | None,
) -> RoutingDecision:
    """Turn a complete set of candidate scores into a `RoutingDecision`."""
    if not scores:
        raise NoCapableHandler("no registered handler can process this request")

    ranked = rank_scores(scores)
    names = [s.handler_name for s in ranked]

    preferred = request.preferred_handler
    if preferred is not None and preferred in names:
        logger.info("Routing to preferred handler %s (explicit override)", preferred)
        return RoutingDecision(
            handler_name=preferred,
            confidence=OVERRIDE_CONFIDENCE,
            reason=OVERRIDE_REASON,
            alternatives=tuple(n for n in names if n != preferred),
            scores=tuple(ranked),
            overridden=True,
        )

    winner = ranked[0]
    decision = RoutingDecision(
        handler_name=winner.handler_name,
        confidence=winner.total,
        reason=build_reason(winner, memory_context),
        alternatives=tuple(names[1:]),
        scores=tuple(ranked),
    )
    logger.info(
        "Routing to %s confidence=%.4f alternatives=%s",
        decision.handler_name,
        decision.confidence,
        list(decision.alternatives),
    )
    return decision


def select(
    request: Request,
    candidates: Sequence,
    memory_context: MemoryContext | None,
) -> RoutingDecision:
    """Score every candidate and pick the winner.

    Args:
        request: Validated request.
        candidates: Handlers whose `can_handle` accepted the request.
        memory_context: Snapshot or `None` when memory is disabled/unavailable.

    Returns:
        Immutable `RoutingDecision`.

    Raises:
        NoCapableHandler: When `candidates` is empty.
    """
    if not candidates:
        raise NoCapableHandler("no registered handler can process this request")
    scores = [score_candidate(handler, request, memory_context) for handler in candidates]
    return decide(request, scores, memory_context)


async def ascore_candidates(
    request: Request,
    candidates: Sequence,
    memory_context: MemoryContext | None,
) -> list[CandidateScore]:
    """Score candidates concurrently and wait for all of them (join, not race)."""
    return list(
        await asyncio.gather(
            *(
                asyncio.to_thread(score_candidate, handler, request, memory_context)
                for handler in candidates
            )
        )
    )


async def aselect(
    request: Request,
    candidates: Sequence,
    memory_context: MemoryContext | None,
) -> RoutingDecision:
    """Async `select`: concurrent scoring, then the same deterministic decision."""
    if not candidates:
        raise NoCapableHandler("no registered handler can process this request")
    scores = await ascore_candidates(request, candidates, memory_context)
    return decide(request, scores, memory_context)
