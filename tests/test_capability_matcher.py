from __future__ import annotations

from collections.abc import Callable

import pytest

from budgetsphere.agents.registry import HandlerDescriptor
from budgetsphere.core.routing_types import Request
from budgetsphere.nlp import capability_matcher
from budgetsphere.nlp.capability_matcher import (
    DEFAULT_SCORE,
    QUICK_CALCULATION,
    RETROSPECTIVE,
    STRATEGIC_PLANNING,
)


@pytest.mark.parametrize(
    "category,message,expected",
    [
        (QUICK_CALCULATION, "how much is 10% of 3000?", 0.9),
        (QUICK_CALCULATION, "tell me about bonds", 0.6),
        (STRATEGIC_PLANNING, "I need a long-term strategy", 0.9),
        (STRATEGIC_PLANNING, "tell me about bonds", 0.3),
        (RETROSPECTIVE, "review my spending", 0.9),
        (RETROSPECTIVE, "tell me about bonds", 0.2),
    ],
)
def test_category_table(
    make_handler: Callable[..., HandlerDescriptor],
    category: str,
    message: str,
    expected: float,
) -> None:
    handler = make_handler("H", category=category)

    assert capability_matcher.score(handler, Request(message=message)) == expected


def test_request_kind_hint_matches_without_keywords(
    make_handler: Callable[..., HandlerDescriptor],
) -> None:
    handler = make_handler("H", category=RETROSPECTIVE)
    request = Request(message="tell me about bonds", request_kind="reflection")

    assert capability_matcher.score(handler, request) == 0.9


def test_multi_goal_request_matches_planning(
    make_handler: Callable[..., HandlerDescriptor],
) -> None:
    handler = make_handler("H", category=STRATEGIC_PLANNING)
    request = Request(message="help me", financial_goals=["house", "education"])

    assert capability_matcher.score(handler, request) == 0.9


@pytest.mark.parametrize("category", [None, "astrology"])
def test_missing_or_unknown_category_scores_default(
    make_handler: Callable[..., HandlerDescriptor],
    category: str | None,
) -> None:
    handler = make_handler("H", category=category)

    assert capability_matcher.score(handler, Request(message="how much?")) == DEFAULT_SCORE


def test_matched_categories_in_table_order() -> None:
    request = Request(message="quick review of my retirement plan")

    assert capability_matcher.matched_categories(request) == [
        QUICK_CALCULATION,
        STRATEGIC_PLANNING,
        RETROSPECTIVE,
    ]
