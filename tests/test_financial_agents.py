from __future__ import annotations

import pytest

from budgetsphere.agents import financial_agents, financial_context
from budgetsphere.agents.registry import HandlerRegistry
from budgetsphere.core.routing_types import Request
from budgetsphere.memory.memory_context import MemoryContext, Procedure


@pytest.mark.parametrize(
    "message,kind,expected",
    [
        ("calculate my taxes", None, 0.9),
        ("quanto devo poupar", None, 0.9),
        ("can you explain bonds", None, 0.7),
        ("bonds", "planning", 0.3),
        ("bonds", None, 0.6),
    ],
)
def test_react_confidence_ladder(message: str, kind: str | None, expected: float) -> None:
    request = Request(message=message, request_kind=kind)

    assert financial_agents.react_can_handle(request)
    assert financial_agents.react_confidence(request) == expected


@pytest.mark.parametrize(
    "fields,expected",
    [
        ({"message": "help", "financial_goals": ["house", "retirement"]}, 0.9),
        ({"message": "my retirement strategy"}, 0.8),
        ({"message": "help", "monthly_income": 4000}, 0.6),
        ({"message": "calculate this", "goal": None}, 0.3),
        ({"message": "anything"}, 0.4),
    ],
)
def test_planning_confidence_ladder(fields: dict, expected: float) -> None:
    assert financial_agents.planning_confidence(Request(**fields)) == expected


def test_planning_candidacy() -> None:
    assert financial_agents.planning_can_handle(Request(message="make a plan"))
    assert financial_agents.planning_can_handle(Request(message="hi", monthly_income=3000))
    assert financial_agents.planning_can_handle(Request(message="hi", request_kind="planning"))
    assert not financial_agents.planning_can_handle(Request(message="what is a bond?"))


@pytest.mark.parametrize(
    "fields,expected",
    [
        ({"message": "bonds", "request_kind": "reflection"}, 0.9),
        ({"message": "how am i doing this year"}, 0.8),
        ({"message": "compare my two accounts"}, 0.7),
        ({"message": "calculate interest"}, 0.2),
        ({"message": "bonds"}, 0.3),
    ],
)
def test_reflection_confidence_ladder(fields: dict, expected: float) -> None:
    assert financial_agents.reflection_confidence(Request(**fields)) == expected


def test_reflection_candidacy() -> None:
    assert financial_agents.reflection_can_handle(Request(message="review my spending"))
    assert financial_agents.reflection_can_handle(Request(message="x", request_kind="reflection"))
    assert not financial_agents.reflection_can_handle(Request(message="how much is rent?"))


def test_default_registry_shares_the_text_client(text_client) -> None:
    registry = financial_agents.build_default_registry(text_client)

    assert isinstance(registry, HandlerRegistry)
    assert registry.names == ["ReactAgent", "PlanningAgent", "ReflectionAgent"]
    assert [h.category for h in registry] == ["quick_calculation", "strategic_planning", "retrospective"]


def test_planning_execute_builds_profile_prompt(text_client) -> None:
    handler = financial_agents.build_planning_agent(text_client)
    request = Request(
        message="plan my retirement",
        monthly_income=5000,
        monthly_expenses=4800,
        age=25,
        goal="retirement",
    )

    result = handler.execute(request, None)

    system_prompt, user_prompt = text_client.calls[0]
    assert "FINANCIAL PROFILE:" in system_prompt
    assert "- Current Savings Rate: 4.0%" in system_prompt
    assert "- Years to Retirement (assuming 65): 40 years" in system_prompt
    assert user_prompt.endswith("USER REQUEST:\nplan my retirement")
    assert result.action_taken == "strategic_planning"
    assert any(r.startswith("PRIORITY: Increase savings rate") for r in result.recommendations)
    assert "Maximize contributions to tax-advantaged retirement accounts" in result.recommendations
    assert len(result.recommendations) == len(set(result.recommendations))


def test_reflection_execute_uses_procedure_recommendations(text_client) -> None:
    handler = financial_agents.build_reflection_agent(text_client)
    ctx = MemoryContext(
        procedures=(Procedure("u1", "ReactAgent routing", "ReactAgent", usage_count=4, success_count=1),)
    )

    result = handler.execute(Request(message="review my progress"), ctx)

    assert result.action_taken == "reflection_analysis"
    assert "ReactAgent" in result.recommendations[0]
    assert "using memory" in result.reasoning


def test_text_client_errors_propagate(make_text_client) -> None:
    handler = financial_agents.build_react_agent(make_text_client(error=RuntimeError("down")))

    with pytest.raises(RuntimeError):
        handler.execute(Request(message="how much?"), None)


def test_common_recommendations() -> None:
    request = Request(message="x", monthly_income=1000, monthly_expenses=500, age=22, risk_tolerance="low")

    recommendations = financial_context.common_recommendations(request)

    assert recommendations == [
        "Excellent savings rate! Consider investing excess savings for long-term growth",
        "Start investing early to take advantage of compound growth",
        "Focus on conservative investments and emergency fund building",
    ]


def test_savings_metrics_need_income_and_expenses() -> None:
    assert financial_context.savings_rate(Request(message="x", monthly_income=1000)) is None
    assert financial_context.savings_rate(
        Request(message="x", monthly_income=1000, monthly_expenses=750)
    ) == pytest.approx(0.25)
    assert financial_context.disposable_income(
        Request(message="x", monthly_income=1000, monthly_expenses=750)
    ) == 250
