"""Prompt assembly helpers used by the financial handlers.

This module only builds prompt strings from an already routed request and an
optional memory snapshot. Handler selection, memory retrieval, and model
invocation happen outside this module.

Design constraints:
    - Deterministic construction for identical inputs.
    - Fixed block ordering per handler.
    - No hidden side effects (no I/O, no global state mutation).

Prompt safety model:
    - Safety is instruction-led, not parser-enforced.
    - User text, context values, and memory summaries are interpolated as raw
      strings. Upstream validation bounds field types, not content.
"""

from budgetsphere.agents.financial_context import profile_lines
from budgetsphere.core.routing_types import Request
from budgetsphere.memory.memory_context import MemoryContext


# =========================================================
# SYSTEM IDENTITY (GLOBAL)
# =========================================================
# Shared prefix of every handler system prompt.

SYSTEM_IDENTITY = (
    "You are part of BudgetSphere, a personal finance assistant.\n"
    "You are not a licensed financial advisor and must not claim to be one.\n"
    "Respond clearly, precisely, and without repetition.\n"
    "Base numbers only on the figures the user provided.\n\n"
)


def _memory_insights(memory_context: MemoryContext | None) -> str:
    if memory_context is None or not memory_context.has_sufficient_context():
        return ""

    lines = []
    patterns = memory_context.success_patterns
    if patterns:
        lines.append("- Approaches that worked well before: " + ", ".join(patterns))
    for recommendation in memory_context.recommendations:
        lines.append(f"- {recommendation}")
    if not lines:
        return ""
    return "\nINSIGHTS FROM PAST INTERACTIONS:\n" + "\n".join(lines) + "\n"


# =========================================================
# REACT (QUICK ANSWER) PROMPT
# =========================================================

def build_react_system_prompt(memory_context: MemoryContext | None = None) -> str:
    """System prompt for fast, conversational answers and calculations."""
    return (
        SYSTEM_IDENTITY +
        "You handle quick financial questions and simple calculations.\n"
        "Guidelines:\n"
        "- Answer directly in a few sentences.\n"
        "- Show the calculation when numbers are involved.\n"
        "- Suggest a deeper planning conversation when the question needs one.\n"
        + _memory_insights(memory_context)
    )


# =========================================================
# PLANNING PROMPT
# =========================================================
# Component order:
#   1) `SYSTEM_IDENTITY`
#   2) Planning role and answer structure
#   3) Financial profile (only declared fields)
#   4) Insights from memory (only with sufficient context)

def build_planning_system_prompt(
    request: Request,
    memory_context: MemoryContext | None = None,
) -> str:
    """System prompt for long-term strategic planning.

    Args:
        request: Routed request; its declared profile fields are rendered.
        memory_context: Optional snapshot contributing success patterns and
            procedure recommendations.

    Returns:
        Fully assembled system prompt.

    Edge cases:
        - Without any profile fields the profile section is omitted entirely.
        - Years to retirement never go below zero.
    """
    profile = profile_lines(request)
    profile_block = ""
    if profile:
        profile_block = "\nFINANCIAL PROFILE:\n" + "\n".join(profile) + "\n"

    return (
        SYSTEM_IDENTITY +
        "You are a strategic financial planner.\n"
        "Structure every answer as:\n"
        "1. Current situation assessment\n"
        "2. Goals and priorities\n"
        "3. Step-by-step plan with timelines\n"
        "4. Risks and how to mitigate them\n"
        + profile_block
        + _memory_insights(memory_context)
    )


# =========================================================
# REFLECTION PROMPT
# =========================================================

def build_reflection_system_prompt(memory_context: MemoryContext | None = None) -> str:
    """System prompt for reviews of past behavior and progress."""
    history = ""
    if memory_context is not None and memory_context.episodes:
        history = (
            f"\nHISTORY OVERVIEW: {memory_context.summary}; "
            f"{memory_context.confidence_score * 100:.0f}% of past interactions succeeded.\n"
        )
    return (
        SYSTEM_IDENTITY +
        "You review the user's financial progress and past decisions.\n"
        "Guidelines:\n"
        "- Identify what went well and what did not.\n"
        "- Compare outcomes with the user's stated goals.\n"
        "- Close with concrete adjustments.\n"
        + history
        + _memory_insights(memory_context)
    )


# =========================================================
# USER PROMPT
# =========================================================
# Block order: MEMORY CONTEXT (optional), CURRENT CONTEXT (optional),
# USER REQUEST (always).

def build_user_prompt(request: Request, memory_context: MemoryContext | None = None) -> str:
    """Build the user prompt shared by all handlers.

    Args:
        request: Routed request.
        memory_context: Optional memory snapshot; rendered only when it has
            sufficient context and a non-empty agent view.

    Returns:
        Prompt string ending with the user's message.
    """
    blocks = []

    if memory_context is not None and memory_context.has_sufficient_context():
        rendered = memory_context.agent_context()
        if rendered:
            blocks.append("MEMORY CONTEXT:\n" + rendered)

    if request.context:
        lines = [f"{key}: {value}" for key, value in request.context.items()]
        blocks.append("CURRENT CONTEXT:\n" + "\n".join(lines))

    blocks.append("USER REQUEST:\n" + request.message)
    return "\n\n".join(blocks)
