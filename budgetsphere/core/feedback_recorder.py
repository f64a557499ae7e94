"""Background delivery of routing outcomes to the memory store.

Architectural role:
    Decouples episode writes from the request path. The router hands every outcome
    to `FeedbackRecorder.observe`, which returns immediately; a daemon worker thread
    drains the queue and calls `MemoryStore.store_episode`.

Delivery semantics:
    - Each job carries its outcome timestamp, so the episode key
      `(session_id, timestamp)` is fixed before the first attempt. Retrying a write
      that actually succeeded is a no-op in the store.
    - `MemoryUnavailable` is retried up to `attempts` times with a short linear
      backoff. Other exceptions are not retried.
    - A job that still fails is logged and dropped. Routing is never affected.

Thread safety:
    `submit`/`observe` may be called from any thread or event loop. `flush` blocks
    until every job queued so far has been processed.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from budgetsphere.agents.financial_context import context_data
from budgetsphere.core.errors import MemoryUnavailable
from budgetsphere.core.routing_types import Outcome, Request


logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS = 0.05
QUEUE_POLL_SECONDS = 0.5


@dataclass(frozen=True)
class EpisodeWrite:
    """One queued `store_episode` call."""

    user_id: str
    session_id: str
    handler_name: str
    user_message: str
    response: str
    success: bool
    timestamp: datetime
    context_data: dict[str, Any] = field(default_factory=dict)
    satisfaction: float | None = None
    feedback: str | None = None
    reasoning: str | None = None
    action_taken: str | None = None


class FeedbackRecorder:
    """Queue plus daemon worker thread writing episodes with bounded retries."""

    def __init__(self, store, attempts: int = 3, max_queue_size: int = 1000):
        self.store = store
        self.attempts = max(1, attempts)
        self.queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self.stats = {"written": 0, "duplicates": 0, "dropped": 0, "retries": 0}

        self._pending = 0
        self._pending_cond = threading.Condition()
        self._shutdown = threading.Event()
        self._worker = threading.Thread(
            target=self._worker_loop, daemon=True, name="FeedbackRecorderWorker"
        )
        self._worker.start()

    @property
    def is_alive(self) -> bool:
        return self._worker.is_alive() and not self._shutdown.is_set()

    # -----------------------------------------------------
    # Producer side
    # -----------------------------------------------------

    def submit(self, job: EpisodeWrite) -> bool:
        """Queue one write without blocking.

        Returns:
            `True` when queued, `False` when the recorder is closed or the queue
            is full (the job is dropped and logged).
        """
        if self._shutdown.is_set():
            logger.warning("Feedback recorder closed; dropping episode for %s", job.session_id)
            self.stats["dropped"] += 1
            return False

        with self._pending_cond:
            self._pending += 1
        try:
            self.queue.put_nowait(job)
        except queue.Full:
            self._job_done()
            self.stats["dropped"] += 1
            logger.warning("Feedback queue full; dropping episode for %s", job.session_id)
            return False
        return True

    def observe(self, request: Request, outcome: Outcome) -> bool:
        """Single entry point for routed outcomes.

        Only successful outcomes of requests with `store_experience` are queued.
        Everything else is logged and ignored.
        """
        if not outcome.success:
            logger.info(
                "Not storing failed outcome handler=%s failure=%s",
                outcome.handler_name,
                outcome.failure_kind.value if outcome.failure_kind else None,
            )
            return False
        if not request.store_experience:
            logger.debug("store_experience disabled for session=%s", request.session_id)
            return False

        return self.submit(
            EpisodeWrite(
                user_id=request.user_id,
                session_id=request.session_id,
                handler_name=outcome.handler_name,
                user_message=request.message,
                response=outcome.message,
                success=outcome.success,
                timestamp=outcome.timestamp,
                context_data=context_data(request),
                satisfaction=outcome.satisfaction,
                reasoning=outcome.reasoning,
                action_taken=outcome.action_taken,
            )
        )

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every queued job has been processed.

        Returns:
            `True` when drained, `False` when `timeout` elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._pending_cond:
            while self._pending > 0:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._pending_cond.wait(remaining)
        return True

    def close(self, timeout: float = 10.0) -> None:
        """Drain remaining jobs, then stop the worker thread."""
        if self._shutdown.is_set():
            return
        self.flush(timeout)
        self._shutdown.set()
        if self._worker.is_alive():
            self._worker.join(timeout=timeout)
        logger.info("Feedback recorder stopped. Stats: %s", self.stats)

    # -----------------------------------------------------
    # Worker side
    # -----------------------------------------------------

    def _job_done(self) -> None:
        with self._pending_cond:
            self._pending -= 1
            self._pending_cond.notify_all()

    def _worker_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                job = self.queue.get(timeout=QUEUE_POLL_SECONDS)
            except queue.Empty:
                continue
            try:
                self._deliver(job)
            finally:
                self._job_done()

    def _deliver(self, job: EpisodeWrite) -> None:
        for attempt in range(1, self.attempts + 1):
            try:
                stored = self.store.store_episode(
                    user_id=job.user_id,
                    session_id=job.session_id,
                    handler_name=job.handler_name,
                    user_message=job.user_message,
                    response=job.response,
                    context_data=job.context_data,
                    success=job.success,
                    satisfaction=job.satisfaction,
                    feedback=job.feedback,
                    reasoning=job.reasoning,
                    action_taken=job.action_taken,
                    timestamp=job.timestamp,
                )
            except MemoryUnavailable:
                if attempt < self.attempts:
                    self.stats["retries"] += 1
                    logger.warning(
                        "Episode write failed (attempt %d/%d) session=%s; retrying",
                        attempt,
                        self.attempts,
                        job.session_id,
                    )
                    time.sleep(RETRY_BACKOFF_SECONDS * attempt)
                    continue
                self.stats["dropped"] += 1
                logger.exception(
                    "Dropping episode for session=%s after %d attempts",
                    job.session_id,
                    self.attempts,
                )
                return
            except Exception:
                self.stats["dropped"] += 1
                logger.exception("Episode write for session=%s failed; dropping", job.session_id)
                return

            if stored:
                self.stats["written"] += 1
            else:
                self.stats["duplicates"] += 1
            return


def update_feedback(
    store,
    session_id: str,
    satisfaction: float | None = None,
    feedback: str | None = None,
) -> bool:
    """Amend the latest episode of a session synchronously.

    Returns:
        Store result, or `False` when the store is unavailable.

    Raises:
        ValueError: For satisfaction outside [0, 1].
    """
    try:
        return store.update_latest_episode_feedback(session_id, satisfaction, feedback)
    except MemoryUnavailable:
        logger.exception("Feedback update failed for session=%s", session_id)
        return False
