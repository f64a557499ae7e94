"""Built-in financial handlers and the default registry.

Handlers:
    - `ReactAgent`: quick questions and calculations. Accepts every request, so
      a default registry never produces an empty candidate set.
    - `PlanningAgent`: long-term strategy for requests with planning intent or a
      declared financial profile.
    - `ReflectionAgent`: reviews of progress and past decisions.

Confidence ladders:
    Each handler's `static_confidence` is a first-match keyword ladder over the
    lowercased message (English and Portuguese keywords). The first matching rung
    decides the value.

Failure handling:
    `execute` functions do not catch text-generation errors. `LLMError` and any
    other exception propagate to the executor, which turns them into a failed
    outcome.
"""

import logging

from budgetsphere.agents import financial_context
from budgetsphere.agents.registry import HandlerDescriptor, HandlerRegistry, HandlerResult
from budgetsphere.core.routing_types import Request
from budgetsphere.llm.service import LLMTextClient, TextCompletion
from budgetsphere.memory.memory_context import MemoryContext
from budgetsphere.nlp.capability_matcher import (
    QUICK_CALCULATION,
    RETROSPECTIVE,
    STRATEGIC_PLANNING,
)
from budgetsphere.prompting import prompt_builder


logger = logging.getLogger(__name__)


REACT_AGENT = "ReactAgent"
PLANNING_AGENT = "PlanningAgent"
REFLECTION_AGENT = "ReflectionAgent"

CHAT_ACTION = "chat_response"
PLANNING_ACTION = "strategic_planning"
REFLECTION_ACTION = "reflection_analysis"


def _contains_any(message: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in message for keyword in keywords)


def _merge(*groups: list[str]) -> tuple[str, ...]:
    merged: list[str] = []
    for group in groups:
        for item in group:
            if item not in merged:
                merged.append(item)
    return tuple(merged)


# =========================================================
# REACT AGENT
# =========================================================

CALCULATION_KEYWORDS = ("calculate", "how much", "what is", "quanto", "calcular")
QUESTION_KEYWORDS = ("?", "help", "ajuda", "explain", "explique")


def react_can_handle(request: Request) -> bool:
    return True


def react_confidence(request: Request) -> float:
    message = request.lowered_message
    if _contains_any(message, CALCULATION_KEYWORDS):
        return 0.9
    if _contains_any(message, QUESTION_KEYWORDS):
        return 0.7
    if request.is_complex_planning_request or request.is_reflection_request:
        return 0.3
    return 0.6


# =========================================================
# PLANNING AGENT
# =========================================================

PLANNING_KEYWORDS = (
    "plan",
    "strategy",
    "long-term",
    "retirement",
    "aposentadoria",
    "estratégia",
    "planejamento",
)
PLANNING_WEAK_KEYWORDS = ("calculate", "what is", "calcular")


def planning_can_handle(request: Request) -> bool:
    return (
        request.is_complex_planning_request
        or request.has_financial_context
        or "plan" in request.lowered_message
    )


def planning_confidence(request: Request) -> float:
    message = request.lowered_message
    if request.is_complex_planning_request:
        return 0.9
    if _contains_any(message, PLANNING_KEYWORDS):
        return 0.8
    if request.has_financial_context:
        return 0.6
    if _contains_any(message, PLANNING_WEAK_KEYWORDS):
        return 0.3
    return 0.4


# =========================================================
# REFLECTION AGENT
# =========================================================

REFLECTION_TRIGGER_KEYWORDS = ("analyze", "review", "progress")
REFLECTION_KEYWORDS = (
    "analyze",
    "review",
    "performance",
    "progress",
    "how am i doing",
    "summary",
    "analisar",
    "revisar",
    "progresso",
    "como estou",
)
EVALUATION_KEYWORDS = ("evaluate", "assess", "compare", "avaliar", "comparar")
REFLECTION_WEAK_KEYWORDS = ("plan", "calculate", "planejar", "calcular")


def reflection_can_handle(request: Request) -> bool:
    return request.is_reflection_request or _contains_any(
        request.lowered_message, REFLECTION_TRIGGER_KEYWORDS
    )


def reflection_confidence(request: Request) -> float:
    message = request.lowered_message
    if request.is_reflection_request:
        return 0.9
    if _contains_any(message, REFLECTION_KEYWORDS):
        return 0.8
    if _contains_any(message, EVALUATION_KEYWORDS):
        return 0.7
    if _contains_any(message, REFLECTION_WEAK_KEYWORDS):
        return 0.2
    return 0.3


# =========================================================
# EXECUTION
# =========================================================

def _memory_reasoning(memory_context: MemoryContext | None) -> str:
    if memory_context is not None and memory_context.has_sufficient_context():
        return f" using memory ({memory_context.summary})"
    return ""


def build_react_agent(text_client: TextCompletion) -> HandlerDescriptor:
    def execute(request: Request, memory_context: MemoryContext | None) -> HandlerResult:
        answer = text_client.complete(
            prompt_builder.build_react_system_prompt(memory_context),
            prompt_builder.build_user_prompt(request, memory_context),
        )
        return HandlerResult(
            message=answer,
            reasoning="Answered conversationally" + _memory_reasoning(memory_context),
            action_taken=CHAT_ACTION,
            recommendations=tuple(financial_context.common_recommendations(request)),
        )

    return HandlerDescriptor(
        name=REACT_AGENT,
        description="Quick answers, explanations, and simple financial calculations",
        can_handle=react_can_handle,
        static_confidence=react_confidence,
        execute=execute,
        category=QUICK_CALCULATION,
        specialties=("calculations", "definitions", "quick questions"),
    )


def build_planning_agent(text_client: TextCompletion) -> HandlerDescriptor:
    def execute(request: Request, memory_context: MemoryContext | None) -> HandlerResult:
        answer = text_client.complete(
            prompt_builder.build_planning_system_prompt(request, memory_context),
            prompt_builder.build_user_prompt(request, memory_context),
        )
        goals = request.financial_goals or ([request.goal] if request.goal else [])
        reasoning = "Built a strategic plan"
        if goals:
            reasoning += " for " + ", ".join(goals)
        return HandlerResult(
            message=answer,
            reasoning=reasoning + _memory_reasoning(memory_context),
            action_taken=PLANNING_ACTION,
            recommendations=_merge(
                financial_context.planning_recommendations(request),
                financial_context.common_recommendations(request),
            ),
        )

    return HandlerDescriptor(
        name=PLANNING_AGENT,
        description="Long-term financial strategy, retirement, and goal planning",
        can_handle=planning_can_handle,
        static_confidence=planning_confidence,
        execute=execute,
        category=STRATEGIC_PLANNING,
        specialties=("retirement", "investment strategy", "multi-goal planning"),
    )


def build_reflection_agent(text_client: TextCompletion) -> HandlerDescriptor:
    def execute(request: Request, memory_context: MemoryContext | None) -> HandlerResult:
        answer = text_client.complete(
            prompt_builder.build_reflection_system_prompt(memory_context),
            prompt_builder.build_user_prompt(request, memory_context),
        )
        learned = memory_context.recommendations if memory_context is not None else []
        return HandlerResult(
            message=answer,
            reasoning="Reviewed past behavior and progress" + _memory_reasoning(memory_context),
            action_taken=REFLECTION_ACTION,
            recommendations=_merge(
                learned,
                financial_context.reflection_recommendations(request),
            ),
        )

    return HandlerDescriptor(
        name=REFLECTION_AGENT,
        description="Reviews of financial progress, performance, and past decisions",
        can_handle=reflection_can_handle,
        static_confidence=reflection_confidence,
        execute=execute,
        category=RETROSPECTIVE,
        specialties=("progress review", "performance analysis", "comparisons"),
    )


def build_default_registry(text_client: TextCompletion | None = None) -> HandlerRegistry:
    """Registry with the three built-in handlers sharing one text client.

    Args:
        text_client: Text-generation collaborator; defaults to `LLMTextClient`
            bound to the configured provider.
    """
    text_client = text_client or LLMTextClient()
    registry = HandlerRegistry(
        [
            build_react_agent(text_client),
            build_planning_agent(text_client),
            build_reflection_agent(text_client),
        ]
    )
    logger.info("Default registry built with handlers: %s", ", ".join(registry.names))
    return registry
