"""Handler execution under a deadline.

Architectural role:
    Runs the selected handler's blocking `execute` in a worker thread and turns
    every result, exception, or timeout into an `Outcome`. The router never sees a
    handler exception.

Failure handling:
    - Handler exception -> `Outcome(success=False,
      failure_kind=HANDLER_EXECUTION_ERROR)`.
    - Deadline exceeded -> `Outcome(success=False, failure_kind=HANDLER_TIMEOUT)`.
      The worker thread cannot be interrupted; it finishes in the background and
      its late result is discarded.
    - Cancellation of the awaiting task propagates unchanged.

Locking:
    No lock is held while a handler runs.
"""

import asyncio
import logging

from budgetsphere.core.errors import HandlerExecutionError, HandlerTimeout
from budgetsphere.core.routing_types import Outcome, Request, RoutingDecision
from budgetsphere.memory.memory_context import MemoryContext


logger = logging.getLogger(__name__)

EXECUTION_FAILED_REASONING = "handler raised an error"
TIMEOUT_REASONING = "handler exceeded the execution deadline"


def deduplicate_response(text: str) -> str:
    """Remove repeated paragraphs from generated text.

    Edge cases:
        - Empty input returns an empty string.
        - An exact first-half/second-half duplicate collapses to one half.
    """
    if not text:
        return ""

    text = text.strip()

    half = len(text) // 2
    if half > 20:
        first = text[:half].strip()
        second = text[half:].strip()
        if first == second:
            return first

    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    unique_paragraphs: list[str] = []
    for paragraph in paragraphs:
        if paragraph not in unique_paragraphs:
            unique_paragraphs.append(paragraph)

    return "\n\n".join(unique_paragraphs)


def failure_outcome(handler_name: str, error: HandlerExecutionError) -> Outcome:
    reasoning = (
        TIMEOUT_REASONING if isinstance(error, HandlerTimeout) else EXECUTION_FAILED_REASONING
    )
    return Outcome(
        handler_name=handler_name,
        success=False,
        message=error.user_message,
        reasoning=f"{reasoning}: {error.detail}",
        failure_kind=error.failure_kind,
    )


class Executor:
    """Executes one routing decision with a per-call deadline."""

    def __init__(self, registry, timeout_seconds: float = 60.0):
        self.registry = registry
        self.timeout_seconds = timeout_seconds

    async def execute(
        self,
        decision: RoutingDecision,
        request: Request,
        memory_context: MemoryContext | None,
    ) -> Outcome:
        """Run the decided handler and describe what happened.

        Args:
            decision: Selector output naming the handler.
            request: Validated request.
            memory_context: Snapshot forwarded to the handler, or `None`.

        Returns:
            Successful or failed `Outcome`; never raises for handler errors.

        Raises:
            asyncio.CancelledError: When the awaiting task is cancelled.
        """
        handler_name = decision.handler_name
        handler = self.registry.get(handler_name)
        if handler is None:
            return failure_outcome(
                handler_name,
                HandlerExecutionError(handler_name, "handler is not registered"),
            )

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(handler.execute, request, memory_context),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Handler %s timed out after %.1fs", handler_name, self.timeout_seconds
            )
            return failure_outcome(
                handler_name,
                HandlerTimeout(handler_name, f"no result within {self.timeout_seconds}s"),
            )
        except Exception as err:
            logger.exception("Handler %s failed", handler_name)
            return failure_outcome(
                handler_name,
                HandlerExecutionError(handler_name, f"{type(err).__name__}: {err}"),
            )

        return Outcome(
            handler_name=handler_name,
            success=True,
            message=deduplicate_response(result.message),
            reasoning=result.reasoning,
            action_taken=result.action_taken,
            recommendations=tuple(result.recommendations),
        )
