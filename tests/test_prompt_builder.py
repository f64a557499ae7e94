from __future__ import annotations

from collections.abc import Callable

from budgetsphere.core.routing_types import Request
from budgetsphere.memory.memory_context import Episode, MemoryContext
from budgetsphere.prompting import prompt_builder


def test_user_prompt_block_order(make_episode: Callable[..., Episode]) -> None:
    ctx = MemoryContext(episodes=(make_episode("ReactAgent", message="what is my rent budget?"),))
    request = Request(message="how much can I spend?", context={"city": "Porto", "dependents": 2})

    prompt = prompt_builder.build_user_prompt(request, ctx)

    memory_at = prompt.index("MEMORY CONTEXT:")
    current_at = prompt.index("CURRENT CONTEXT:")
    request_at = prompt.index("USER REQUEST:")
    assert memory_at < current_at < request_at
    assert "city: Porto\ndependents: 2" in prompt
    assert prompt.endswith("how much can I spend?")


def test_user_prompt_skips_empty_blocks() -> None:
    prompt = prompt_builder.build_user_prompt(Request(message="hi"), MemoryContext())

    assert prompt == "USER REQUEST:\nhi"


def test_system_prompts_share_identity() -> None:
    request = Request(message="plan")

    for prompt in (
        prompt_builder.build_react_system_prompt(),
        prompt_builder.build_planning_system_prompt(request),
        prompt_builder.build_reflection_system_prompt(),
    ):
        assert prompt.startswith(prompt_builder.SYSTEM_IDENTITY)


def test_planning_prompt_omits_profile_without_fields() -> None:
    assert "FINANCIAL PROFILE:" not in prompt_builder.build_planning_system_prompt(Request(message="plan"))


def test_planning_prompt_lists_all_goals() -> None:
    request = Request(message="plan", financial_goals=["house", "education"], risk_tolerance="high")

    prompt = prompt_builder.build_planning_system_prompt(request)

    assert "- Risk Tolerance: HIGH" in prompt
    assert "- All Financial Goals: house, education" in prompt


def test_insights_from_success_patterns(make_episode: Callable[..., Episode]) -> None:
    ctx = MemoryContext(
        episodes=(make_episode("PlanningAgent", satisfaction=0.9, action_taken="strategic_planning"),)
    )

    prompt = prompt_builder.build_react_system_prompt(ctx)

    assert "INSIGHTS FROM PAST INTERACTIONS:" in prompt
    assert "PlanningAgent:strategic_planning" in prompt


def test_prompts_are_deterministic(make_episode: Callable[..., Episode]) -> None:
    ctx = MemoryContext(episodes=(make_episode("ReflectionAgent"),))
    request = Request(message="review my progress", monthly_income=3000, monthly_expenses=2000)

    assert prompt_builder.build_reflection_system_prompt(ctx) == prompt_builder.build_reflection_system_prompt(ctx)
    assert prompt_builder.build_planning_system_prompt(request, ctx) == prompt_builder.build_planning_system_prompt(
        request, ctx
    )
