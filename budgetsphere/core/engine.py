"""Core request orchestration: validation, memory, selection, execution, feedback.

Architectural role:
    Provides the main pipeline used by embedding applications to turn one user
    request into a routed handler response with memory-weighted selection and
    asynchronous experience recording.

Control-flow model:
    1. Validate the request (`ValidationError` hard stop).
    2. Apply inline feedback about the previous answer to the session's latest
       episode (best effort).
    3. Ask the registry for candidates (`NoCapableHandler` hard stop, raised before
       any memory work).
    4. Build a memory snapshot in a worker thread when memory is enabled and
       configured. Failures degrade to routing without memory.
    5. Score all candidates concurrently, join, and select deterministically.
    6. Execute the winner under a deadline. Handler failures become failure
       responses that keep the routing metadata.
    7. Hand the outcome to the feedback recorder without waiting for the write.

Cancellation:
    Cancelling before step 6 abandons the request with no side effects. Cancelling
    during step 6 still hands a failed outcome to the recorder, then re-raises.

Determinism:
    For a fixed registry, request, and memory snapshot, the decision is
    deterministic. Handler output depends on the text-generation backend.

Error handling strategy:
    Only `ValidationError` and `NoCapableHandler` escape `route`/`aroute`.
    Memory failures are logged and absorbed; handler failures are reported in the
    response.
"""

import asyncio
import logging
import time
from typing import Any

from budgetsphere.agents.financial_agents import build_default_registry
from budgetsphere.core import selector
from budgetsphere.core.errors import FailureKind, NoCapableHandler
from budgetsphere.core.executor import Executor
from budgetsphere.core.feedback_recorder import FeedbackRecorder, update_feedback
from budgetsphere.core.routing_types import Outcome, Request, Response
from budgetsphere.core.settings import RouterSettings
from budgetsphere.memory.episode_store import EpisodeStore
from budgetsphere.memory.memory_context import MemoryContext


logger = logging.getLogger(__name__)

CANCELLED_REASONING = "request was cancelled during handler execution"


class Router:
    """Memory-weighted request router over an immutable handler registry.

    Args:
        registry: `HandlerRegistry` built at startup.
        memory_store: Optional `MemoryStore`; `None` disables memory entirely.
        settings: Runtime limits; defaults to `RouterSettings.from_env()`.
        recorder: Optional pre-built `FeedbackRecorder`. One is created for the
            memory store when omitted.
    """

    def __init__(
        self,
        registry,
        memory_store=None,
        settings: RouterSettings | None = None,
        recorder: FeedbackRecorder | None = None,
    ):
        self.registry = registry
        self.memory_store = memory_store
        self.settings = settings or RouterSettings.from_env()
        self.executor = Executor(registry, timeout_seconds=self.settings.handler_timeout_seconds)

        if recorder is None and memory_store is not None:
            recorder = FeedbackRecorder(
                memory_store, attempts=self.settings.feedback_write_attempts
            )
        self.recorder = recorder

    # =========================================================
    # ROUTING
    # =========================================================

    async def aroute(self, request: Request | dict[str, Any]) -> Response:
        """Route one request and return the handler's response.

        Args:
            request: `Request` or raw field mapping.

        Returns:
            `Response` carrying the routing decision. `success=False` with a
            `failure_kind` when the selected handler failed or timed out.

        Raises:
            ValidationError: Malformed or empty request.
            NoCapableHandler: No registered handler accepts the request.
        """
        started = time.perf_counter()
        request = Request.parse(request)

        if request.has_feedback:
            await asyncio.to_thread(self._apply_inline_feedback, request)

        candidates = self.registry.candidates(request)
        if not candidates:
            logger.warning("No capable handler for session=%s", request.session_id)
            raise NoCapableHandler("no registered handler can process this request")

        memory_context = await self._build_memory_context(request)
        decision = await selector.aselect(request, candidates, memory_context)

        try:
            outcome = await self.executor.execute(decision, request, memory_context)
        except asyncio.CancelledError:
            self._observe(
                request,
                Outcome(
                    handler_name=decision.handler_name,
                    success=False,
                    message="",
                    reasoning=CANCELLED_REASONING,
                    failure_kind=FailureKind.HANDLER_EXECUTION_ERROR,
                ),
            )
            raise

        response = Response(
            success=outcome.success,
            message=outcome.message,
            decision=decision,
            outcome=outcome,
            failure_kind=outcome.failure_kind,
            memory_used=memory_context is not None,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
        )
        self._observe(request, outcome)

        logger.info(
            "Routed session=%s handler=%s success=%s in %dms",
            request.session_id,
            decision.handler_name,
            outcome.success,
            response.processing_time_ms,
        )
        return response

    def route(self, request: Request | dict[str, Any]) -> Response:
        """Synchronous `aroute` for callers without a running event loop.

        Runs its own loop through `asyncio.run`.

        Raises:
            RuntimeError: When called from a thread that already runs an event
                loop. Await `aroute` there.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            raise RuntimeError("route() cannot run inside an event loop; await aroute() instead")
        return asyncio.run(self.aroute(request))

    async def _build_memory_context(self, request: Request) -> MemoryContext | None:
        if not request.use_memory or self.memory_store is None:
            return None
        try:
            return await asyncio.to_thread(
                self.memory_store.build_context,
                request.session_id,
                request.user_id,
                request.message,
                request.hints,
                None,
            )
        except Exception:
            logger.exception(
                "Memory context unavailable for session=%s; routing without memory",
                request.session_id,
            )
            return None

    def _apply_inline_feedback(self, request: Request) -> None:
        if self.memory_store is None:
            return
        self._flush_recorder()
        updated = update_feedback(
            self.memory_store,
            request.session_id,
            satisfaction=request.previous_satisfaction,
            feedback=request.user_feedback,
        )
        logger.debug("Inline feedback for session=%s applied=%s", request.session_id, updated)

    def _flush_recorder(self) -> None:
        # The answer being rated may still be queued.
        if self.recorder is not None:
            self.recorder.flush(timeout=self.settings.handler_timeout_seconds)

    def _observe(self, request: Request, outcome: Outcome) -> None:
        if self.recorder is None:
            return
        self.recorder.observe(request, outcome)

    # =========================================================
    # FEEDBACK AND INSPECTION
    # =========================================================

    def update_feedback(
        self,
        session_id: str,
        satisfaction: float | None = None,
        feedback: str | None = None,
    ) -> bool:
        """Amend the latest stored episode of a session.

        Waits (bounded by the handler timeout) for queued experience writes
        first, so a rating given right after `route` returns lands on that answer.

        Returns:
            `True` when an episode was found, `False` when the session has none,
            memory is not configured, or the store is unavailable.

        Raises:
            ValueError: For satisfaction outside [0, 1].
        """
        if self.memory_store is None:
            return False
        self._flush_recorder()
        return update_feedback(self.memory_store, session_id, satisfaction, feedback)

    def list_handlers(self) -> list[dict]:
        return [handler.info() for handler in self.registry]

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "handlers": self.registry.names,
            "memory_configured": self.memory_store is not None,
            "recorder_alive": self.recorder.is_alive if self.recorder else False,
        }

    def close(self) -> None:
        """Flush pending experience writes and stop the recorder."""
        if self.recorder is not None:
            self.recorder.close()


def create_router(settings: RouterSettings | None = None, text_client=None) -> Router:
    """Router with the built-in handlers and a JSON-mirrored episode store.

    Args:
        settings: Runtime limits; defaults to `RouterSettings.from_env()`.
        text_client: Text-generation collaborator; defaults to the configured
            LLM provider.
    """
    settings = settings or RouterSettings.from_env()
    return Router(
        build_default_registry(text_client),
        memory_store=EpisodeStore.from_settings(settings),
        settings=settings,
    )
