from __future__ import annotations

from collections.abc import Callable
from typing import Any

import numpy as np

from budgetsphere.memory.context_builder import build_memory_context, rank_episodes, rank_procedures
from budgetsphere.memory.embedding_model import embed, embed_batch, normalize_text
from budgetsphere.memory.memory_context import Episode, Procedure


def test_embedder_is_deterministic_and_normalized() -> None:
    first = embed("How much should I save?")
    second = embed("how much should i save")

    assert first is not None
    assert np.allclose(first, second)
    assert np.isclose(np.linalg.norm(first), 1.0)
    assert embed("  ...  ") is None


def test_normalize_text() -> None:
    assert normalize_text("  Long-term   PLAN!! ") == "long-term plan"
    assert normalize_text("") == ""


def test_query_and_passage_prefixes(fake_encoder: Any) -> None:
    embed("How much?")
    matrix = embed_batch(["Rent budget", None])

    assert fake_encoder.batches == [["query: how much"], ["passage: rent budget", "passage: "]]
    assert matrix is not None
    assert matrix.shape == (2, fake_encoder.dimension)
    assert matrix.dtype == np.float32
    assert embed_batch([]) is None


def test_most_similar_episode_first(make_episode: Callable[..., Episode]) -> None:
    episodes = [
        make_episode("ReactAgent", message="what is a bond yield", minutes=0),
        make_episode("PlanningAgent", message="plan my retirement savings", minutes=1),
        make_episode("ReactAgent", message="how much is my rent", minutes=2),
    ]

    ranked = rank_episodes("retirement savings plan", episodes, limit=3)

    assert ranked[0].handler_name == "PlanningAgent"
    assert len(ranked) == 3


def test_equal_relevance_prefers_newest(make_episode: Callable[..., Episode]) -> None:
    older = make_episode("ReactAgent", message="same words", minutes=0)
    newer = make_episode("PlanningAgent", message="same words", minutes=5)

    ranked = rank_episodes("same words", [older, newer], limit=1)

    assert ranked == [newer]


def test_own_procedures_first() -> None:
    procedures = [
        Procedure("u1", "ReactAgent routing", "ReactAgent", usage_count=9),
        Procedure("u1", "PlanningAgent routing", "PlanningAgent", usage_count=1),
    ]

    ordered = rank_procedures("PlanningAgent", procedures, limit=5)

    assert [p.handler_pattern for p in ordered] == ["PlanningAgent", "ReactAgent"]
    assert [p.handler_pattern for p in rank_procedures(None, procedures, 5)] == [
        "ReactAgent",
        "PlanningAgent",
    ]


def test_build_memory_context_caps_each_domain(make_episode: Callable[..., Episode]) -> None:
    episodes = [make_episode("ReactAgent", minutes=m) for m in range(5)]

    ctx = build_memory_context("how much", None, episodes, [], [], max_episodes=3, min_episodes=2)

    assert len(ctx.episodes) == 3
    assert ctx.concepts == ()
    assert ctx.min_episodes == 2
