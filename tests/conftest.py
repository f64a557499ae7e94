from __future__ import annotations

import threading
import time
import zlib
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

import numpy as np
import pytest

from budgetsphere.agents.financial_agents import build_default_registry
from budgetsphere.agents.registry import HandlerDescriptor, HandlerRegistry, HandlerResult
from budgetsphere.core.engine import Router
from budgetsphere.core.errors import MemoryUnavailable
from budgetsphere.core.routing_types import Request
from budgetsphere.core.settings import RouterSettings
from budgetsphere.memory import embedding_model
from budgetsphere.memory.episode_store import EpisodeStore
from budgetsphere.memory.memory_context import Episode


BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeTextClient:
    """Records prompts and returns a canned reply (or raises / stalls)."""

    def __init__(
        self,
        reply: str = "Save about 20% of your income.",
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        with self._lock:
            self.calls.append((system_prompt, user_prompt))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class FlakyStore:
    """Wraps a real store; the first `failures` operations of each kind raise."""

    def __init__(self, inner: EpisodeStore, failures: int = 0, fail_context: bool = False) -> None:
        self.inner = inner
        self.failures = failures
        self.fail_context = fail_context
        self.store_calls = 0
        self.context_calls = 0

    def build_context(self, *args: Any, **kwargs: Any):
        self.context_calls += 1
        if self.fail_context:
            raise MemoryUnavailable("memory offline")
        return self.inner.build_context(*args, **kwargs)

    def store_episode(self, **kwargs: Any) -> bool:
        self.store_calls += 1
        if self.store_calls <= self.failures:
            raise MemoryUnavailable("write failed")
        return self.inner.store_episode(**kwargs)

    def update_latest_episode_feedback(self, *args: Any, **kwargs: Any) -> bool:
        return self.inner.update_latest_episode_feedback(*args, **kwargs)


class RecorderSpy:
    def __init__(self) -> None:
        self.observed: list[tuple[Request, Any]] = []
        self.closed = False

    @property
    def is_alive(self) -> bool:
        return not self.closed

    def observe(self, request: Request, outcome: Any) -> bool:
        self.observed.append((request, outcome))
        return True

    def close(self) -> None:
        self.closed = True

    def flush(self, timeout: float | None = None) -> bool:
        return True


class FakeEncoder:
    """Bag-of-words stand-in for the sentence-transformer model.

    Drops the `query: `/`passage: ` prefix so both sides share one vocabulary.
    """

    dimension = 256

    def __init__(self) -> None:
        self.batches: list[list[str]] = []

    def encode(self, texts: list[str], convert_to_numpy: bool = True) -> np.ndarray:
        self.batches.append(list(texts))
        matrix = np.zeros((len(texts), self.dimension), dtype="float32")
        for row, text in enumerate(texts):
            body = text.split(": ", 1)[-1]
            for token in body.split():
                matrix[row, zlib.crc32(token.encode("utf-8")) % self.dimension] += 1.0
        return matrix


class SlowStore(FlakyStore):
    """Real store whose episode writes take `delay` seconds."""

    def __init__(self, inner: EpisodeStore, delay: float) -> None:
        super().__init__(inner)
        self.delay = delay

    def store_episode(self, **kwargs: Any) -> bool:
        time.sleep(self.delay)
        return super().store_episode(**kwargs)


@pytest.fixture(autouse=True)
def fake_encoder(monkeypatch: pytest.MonkeyPatch) -> FakeEncoder:
    encoder = FakeEncoder()
    monkeypatch.setattr(embedding_model, "_model", encoder)
    return encoder


@pytest.fixture
def make_slow_store() -> Callable[..., SlowStore]:
    return SlowStore


@pytest.fixture
def text_client() -> FakeTextClient:
    return FakeTextClient()


@pytest.fixture
def make_text_client() -> Callable[..., FakeTextClient]:
    return FakeTextClient


@pytest.fixture
def registry(text_client: FakeTextClient) -> HandlerRegistry:
    return build_default_registry(text_client)


@pytest.fixture
def store() -> EpisodeStore:
    return EpisodeStore()


@pytest.fixture
def make_flaky_store() -> Callable[..., FlakyStore]:
    return FlakyStore


@pytest.fixture
def recorder_spy() -> RecorderSpy:
    return RecorderSpy()


@pytest.fixture
def settings() -> RouterSettings:
    return RouterSettings(handler_timeout_seconds=2.0, feedback_write_attempts=3)


@pytest.fixture
def router(registry: HandlerRegistry, store: EpisodeStore, settings: RouterSettings) -> Iterator[Router]:
    r = Router(registry, memory_store=store, settings=settings)
    yield r
    r.close()


@pytest.fixture
def make_request() -> Callable[..., Request]:
    def _make_request(message: str = "how much should I save monthly?", **fields: Any) -> Request:
        return Request.parse({"message": message, **fields})

    return _make_request


@pytest.fixture
def make_episode() -> Callable[..., Episode]:
    def _make_episode(
        handler_name: str,
        *,
        success: bool = True,
        satisfaction: float | None = None,
        topic: str | None = None,
        session_id: str = "s1",
        user_id: str = "u1",
        message: str = "how much should I save?",
        minutes: int = 0,
        action_taken: str | None = None,
    ) -> Episode:
        timestamp = BASE_TIME + timedelta(minutes=minutes)
        return Episode(
            episode_id=f"{session_id}:{timestamp.isoformat()}",
            user_id=user_id,
            session_id=session_id,
            handler_name=handler_name,
            user_message=message,
            response="ok",
            success=success,
            timestamp=timestamp,
            topic=topic,
            satisfaction=satisfaction,
            action_taken=action_taken,
        )

    return _make_episode


@pytest.fixture
def make_handler() -> Callable[..., HandlerDescriptor]:
    def _make_handler(
        name: str,
        confidence: float | Callable[[Request], float] = 0.5,
        *,
        category: str | None = None,
        can_handle: bool | Callable[[Request], bool] = True,
        reply: str = "done",
        execute: Callable[..., HandlerResult] | None = None,
    ) -> HandlerDescriptor:
        def _default_execute(request: Request, memory_context: Any) -> HandlerResult:
            return HandlerResult(message=reply, reasoning=f"{name} ran", action_taken="test")

        return HandlerDescriptor(
            name=name,
            description=f"{name} test handler",
            can_handle=can_handle if callable(can_handle) else (lambda _r: can_handle),
            static_confidence=confidence if callable(confidence) else (lambda _r: confidence),
            execute=execute or _default_execute,
            category=category,
        )

    return _make_handler


@pytest.fixture
def store_episode(store: EpisodeStore) -> Callable[..., bool]:
    """Write an episode straight into the `store` fixture."""

    def _store_episode(
        handler_name: str,
        *,
        success: bool = True,
        satisfaction: float | None = None,
        topic: str | None = None,
        session_id: str = "s1",
        user_id: str = "u1",
        message: str = "review my plan",
        minutes: int = 0,
    ) -> bool:
        return store.store_episode(
            user_id=user_id,
            session_id=session_id,
            handler_name=handler_name,
            user_message=message,
            response="ok",
            context_data={"topic": topic} if topic else {},
            success=success,
            satisfaction=satisfaction,
            timestamp=BASE_TIME + timedelta(minutes=minutes),
        )

    return _store_episode
