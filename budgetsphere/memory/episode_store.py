"""Episodic, semantic, and procedural memory storage.

Architectural role:
    Implements the memory-store collaborator consumed by the router:
    - `build_context(...)`: bounded per-request `MemoryContext` snapshot.
    - `store_episode(...)`: append one interaction outcome.
    - `update_latest_episode_feedback(...)`: amend the newest episode of a session.

Persistence:
    Records live in process memory and, when `memory_dir` is set, are mirrored to
    `episodes.json`, `concepts.json`, and `procedures.json` using atomic temp-file
    replacement after every mutation.

Concurrency:
    - One re-entrant store lock guards all record maps and file writes.
    - Feedback updates additionally hold a per-session lock so the
      "find latest episode, then amend it" read-modify-write is serialized per
      session. A session's lock is dropped once no thread holds or awaits it.

Atomicity:
    Every mutation is applied together with its file write. When the write fails
    the record maps are restored, so a failed write leaves no trace in memory and
    a retry of the same episode is stored again instead of being skipped.
    Free-form context values are coerced to JSON (non-JSON values become their
    `str()`) before anything is mutated.

Idempotency:
    - Episodes are keyed by `"<session_id>:<timestamp>"`; storing the same key
      twice is a no-op.
    - Re-applying identical feedback leaves stored state unchanged.

Failure handling:
    I/O, encoding, decoding, and index failures surface as
    `budgetsphere.core.errors.MemoryUnavailable`.
"""

import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Protocol

from budgetsphere.core.errors import MemoryUnavailable
from budgetsphere.memory.context_builder import build_memory_context
from budgetsphere.memory.memory_context import Concept, Episode, MemoryContext, Procedure


logger = logging.getLogger(__name__)


EPISODES_FILE = "episodes.json"
CONCEPTS_FILE = "concepts.json"
PROCEDURES_FILE = "procedures.json"


class MemoryStore(Protocol):
    """Read/write contract of the memory collaborator."""

    def build_context(
        self,
        session_id: str,
        user_id: str,
        message: str,
        hints: dict[str, Any],
        handler_name: str | None,
    ) -> MemoryContext:
        ...

    def store_episode(
        self,
        user_id: str,
        session_id: str,
        handler_name: str,
        user_message: str,
        response: str,
        context_data: dict[str, Any],
        success: bool,
        satisfaction: float | None = None,
        feedback: str | None = None,
        reasoning: str | None = None,
        action_taken: str | None = None,
        timestamp: datetime | None = None,
    ) -> bool:
        ...

    def update_latest_episode_feedback(
        self,
        session_id: str,
        satisfaction: float | None = None,
        feedback: str | None = None,
    ) -> bool:
        ...


def episode_key(session_id: str, timestamp: datetime) -> str:
    return f"{session_id}:{timestamp.isoformat()}"


def json_safe(data: dict[str, Any]) -> dict[str, Any]:
    """Copy `data` as plain JSON types; values JSON cannot encode become `str()`.

    Raises:
        MemoryUnavailable: When `data` cannot be encoded at all (for example a
            circular reference).
    """
    try:
        return json.loads(json.dumps(data or {}, default=str))
    except (TypeError, ValueError) as err:
        raise MemoryUnavailable("context data is not serializable") from err


def atomic_json_save(path: str, data: Any) -> None:
    """Persist JSON data atomically via temporary file replacement."""
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


def load_json_list(path: str) -> list[dict[str, Any]]:
    """Load a JSON list from disk; missing file yields `[]`.

    Raises:
        MemoryUnavailable: When the file exists but cannot be read or decoded.
    """
    if not os.path.exists(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as err:
        logger.exception("Failed to load memory file %s", path)
        raise MemoryUnavailable(f"cannot read {path}") from err
    if not isinstance(data, list):
        raise MemoryUnavailable(f"{path} does not contain a list")
    return data


class EpisodeStore:
    """In-process memory store with optional JSON mirroring.

    Args:
        memory_dir: Directory for JSON files, or `None` for in-process only.
        max_episodes, max_concepts, max_procedures: Snapshot caps.
        min_episodes: Sufficiency threshold placed on built snapshots.
    """

    def __init__(
        self,
        memory_dir: str | None = None,
        max_episodes: int = 10,
        max_concepts: int = 5,
        max_procedures: int = 5,
        min_episodes: int = 1,
    ):
        self.memory_dir = memory_dir
        self.max_episodes = max_episodes
        self.max_concepts = max_concepts
        self.max_procedures = max_procedures
        self.min_episodes = min_episodes

        self._lock = threading.RLock()
        # session_id -> [lock, holders and waiters]
        self._session_locks: dict[str, list] = {}
        self._session_locks_guard = threading.Lock()

        self._episodes: dict[str, Episode] = {}
        self._concepts: dict[tuple[str, str], Concept] = {}
        self._procedures: dict[tuple[str, str], Procedure] = {}

        if memory_dir:
            os.makedirs(memory_dir, exist_ok=True)
            self._load()

    @classmethod
    def from_settings(cls, settings) -> "EpisodeStore":
        return cls(
            memory_dir=settings.memory_dir,
            max_episodes=settings.max_context_episodes,
            max_concepts=settings.max_context_concepts,
            max_procedures=settings.max_context_procedures,
            min_episodes=settings.min_context_episodes,
        )

    # -----------------------------------------------------
    # Persistence
    # -----------------------------------------------------

    def _path(self, name: str) -> str:
        return os.path.join(self.memory_dir, name)

    def _load(self) -> None:
        try:
            episodes = [Episode.from_dict(d) for d in load_json_list(self._path(EPISODES_FILE))]
            concepts = [Concept.from_dict(d) for d in load_json_list(self._path(CONCEPTS_FILE))]
            procedures = [
                Procedure.from_dict(d) for d in load_json_list(self._path(PROCEDURES_FILE))
            ]
        except (KeyError, TypeError, ValueError) as err:
            raise MemoryUnavailable(f"corrupt memory files in {self.memory_dir}") from err

        self._episodes = {e.episode_id: e for e in episodes}
        self._concepts = {(c.user_id, c.name.lower()): c for c in concepts}
        self._procedures = {(p.user_id, p.handler_pattern): p for p in procedures}

        logger.info(
            "Loaded memory from %s: episodes=%d concepts=%d procedures=%d",
            self.memory_dir,
            len(self._episodes),
            len(self._concepts),
            len(self._procedures),
        )

    def _persist(self) -> None:
        if not self.memory_dir:
            return
        try:
            atomic_json_save(
                self._path(EPISODES_FILE), [e.to_dict() for e in self._episodes.values()]
            )
            atomic_json_save(
                self._path(CONCEPTS_FILE), [c.to_dict() for c in self._concepts.values()]
            )
            atomic_json_save(
                self._path(PROCEDURES_FILE), [p.to_dict() for p in self._procedures.values()]
            )
        except (OSError, TypeError, ValueError) as err:
            logger.exception("Failed to persist memory files to %s", self.memory_dir)
            raise MemoryUnavailable(f"cannot write memory files to {self.memory_dir}") from err

    @contextmanager
    def _transaction(self):
        """Hold the store lock, persist on exit, and roll back if anything fails."""
        with self._lock:
            saved = (dict(self._episodes), dict(self._concepts), dict(self._procedures))
            try:
                yield
                self._persist()
            except BaseException:
                self._episodes, self._concepts, self._procedures = saved
                raise

    @contextmanager
    def _session_lock(self, session_id: str):
        with self._session_locks_guard:
            entry = self._session_locks.get(session_id)
            if entry is None:
                entry = self._session_locks[session_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._session_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._session_locks[session_id]

    # -----------------------------------------------------
    # Derived statistics
    # -----------------------------------------------------

    def _recompute_procedure(self, user_id: str, handler_name: str) -> None:
        relevant = [
            e for e in self._episodes.values()
            if e.user_id == user_id and e.handler_name == handler_name
        ]
        self._procedures[(user_id, handler_name)] = Procedure(
            user_id=user_id,
            name=f"{handler_name} routing",
            handler_pattern=handler_name,
            usage_count=len(relevant),
            success_count=sum(1 for e in relevant if e.counts_as_success),
        )

    def _record_concept_usage(self, user_id: str, message: str, success: bool) -> None:
        lowered = message.lower()
        for key, concept in list(self._concepts.items()):
            if concept.user_id != user_id or concept.name.lower() not in lowered:
                continue
            usage = concept.usage_count + 1
            rate = (concept.success_rate * concept.usage_count + (1.0 if success else 0.0)) / usage
            self._concepts[key] = Concept(
                user_id=concept.user_id,
                name=concept.name,
                definition=concept.definition,
                usage_count=usage,
                success_rate=rate,
            )

    # -----------------------------------------------------
    # Collaborator contract
    # -----------------------------------------------------

    def build_context(
        self,
        session_id: str,
        user_id: str,
        message: str,
        hints: dict[str, Any] | None = None,
        handler_name: str | None = None,
    ) -> MemoryContext:
        """Build a relevance-ranked snapshot of the user's memory.

        Args:
            session_id: Requesting session (logged only; memory spans sessions).
            user_id: Owner of the records to consider.
            message: Relevance query.
            hints: Structured request hints; a declared `goal` widens the query.
            handler_name: Handler whose procedures are listed first.

        Returns:
            Bounded, immutable `MemoryContext`.

        Raises:
            MemoryUnavailable: When ranking fails.
        """
        hints = hints or {}
        with self._lock:
            episodes = [e for e in self._episodes.values() if e.user_id == user_id]
            concepts = [c for c in self._concepts.values() if c.user_id == user_id]
            procedures = [p for p in self._procedures.values() if p.user_id == user_id]

        query = message
        if hints.get("goal"):
            query = f"{message} {hints['goal']}"

        try:
            context = build_memory_context(
                query,
                handler_name,
                episodes,
                concepts,
                procedures,
                max_episodes=self.max_episodes,
                max_concepts=self.max_concepts,
                max_procedures=self.max_procedures,
                min_episodes=self.min_episodes,
            )
        except (RuntimeError, ValueError) as err:
            logger.exception("Memory context ranking failed for user=%s", user_id)
            raise MemoryUnavailable("memory context ranking failed") from err

        logger.debug(
            "Built memory context session=%s user=%s: %s",
            session_id,
            user_id,
            context.summary,
        )
        return context

    def store_episode(
        self,
        user_id: str,
        session_id: str,
        handler_name: str,
        user_message: str,
        response: str,
        context_data: dict[str, Any],
        success: bool,
        satisfaction: float | None = None,
        feedback: str | None = None,
        reasoning: str | None = None,
        action_taken: str | None = None,
        timestamp: datetime | None = None,
    ) -> bool:
        """Append one episode and refresh derived statistics.

        Returns:
            `True` when stored, `False` when an episode with the same
            `(session_id, timestamp)` key already exists.

        Raises:
            MemoryUnavailable: When the mirror files cannot be written.
        """
        timestamp = timestamp or datetime.now(timezone.utc)
        key = episode_key(session_id, timestamp)
        context_data = json_safe(context_data)

        episode = Episode(
            episode_id=key,
            user_id=user_id,
            session_id=session_id,
            handler_name=handler_name,
            user_message=user_message,
            response=response,
            success=success,
            timestamp=timestamp,
            topic=context_data.get("topic"),
            satisfaction=satisfaction,
            feedback=feedback,
            reasoning=reasoning,
            action_taken=action_taken,
            context_data=context_data,
        )

        with self._lock:
            if key in self._episodes:
                logger.debug("Episode %s already stored; skipping duplicate write", key)
                return False

            with self._transaction():
                self._episodes[key] = episode
                self._recompute_procedure(user_id, handler_name)
                self._record_concept_usage(user_id, user_message, success)

        logger.info(
            "Stored episode %s user=%s handler=%s success=%s",
            key,
            user_id,
            handler_name,
            success,
        )
        return True

    def update_latest_episode_feedback(
        self,
        session_id: str,
        satisfaction: float | None = None,
        feedback: str | None = None,
    ) -> bool:
        """Amend the most recent episode of a session.

        The newest episode is found by timestamp across all handlers of the
        session. `None` arguments leave the stored value unchanged.

        Returns:
            `True` when an episode exists (amended or already identical),
            `False` when the session has no episodes.

        Raises:
            ValueError: For satisfaction outside [0, 1].
            MemoryUnavailable: When the mirror files cannot be written.
        """
        if satisfaction is not None and not 0.0 <= satisfaction <= 1.0:
            raise ValueError("satisfaction must be within [0, 1]")

        with self._session_lock(session_id):
            with self._lock:
                session_episodes = [
                    e for e in self._episodes.values() if e.session_id == session_id
                ]
                if not session_episodes:
                    logger.info("No episode to amend for session=%s", session_id)
                    return False

                latest = max(session_episodes, key=lambda e: e.timestamp)
                amended = latest.with_feedback(satisfaction, feedback)
                if amended == latest:
                    return True

                with self._transaction():
                    self._episodes[latest.episode_id] = amended
                    self._recompute_procedure(latest.user_id, latest.handler_name)

        logger.info(
            "Updated feedback for episode %s satisfaction=%s",
            latest.episode_id,
            amended.satisfaction,
        )
        return True

    # -----------------------------------------------------
    # Knowledge management and inspection
    # -----------------------------------------------------

    def add_concept(self, user_id: str, name: str, definition: str) -> Concept:
        """Register or redefine a concept for a user, keeping its usage stats."""
        name = name.strip()
        if not name:
            raise ValueError("concept name must not be empty")

        with self._lock:
            key = (user_id, name.lower())
            existing = self._concepts.get(key)
            concept = Concept(
                user_id=user_id,
                name=name,
                definition=definition.strip(),
                usage_count=existing.usage_count if existing else 0,
                success_rate=existing.success_rate if existing else 0.0,
            )
            with self._transaction():
                self._concepts[key] = concept
        return concept

    def episodes_for_session(self, session_id: str) -> list[Episode]:
        """Episodes of one session, oldest first."""
        with self._lock:
            episodes = [e for e in self._episodes.values() if e.session_id == session_id]
        return sorted(episodes, key=lambda e: e.timestamp)

    def procedures_for_user(self, user_id: str) -> list[Procedure]:
        with self._lock:
            return [p for p in self._procedures.values() if p.user_id == user_id]

    def concepts_for_user(self, user_id: str) -> list[Concept]:
        with self._lock:
            return [c for c in self._concepts.values() if c.user_id == user_id]

    @property
    def episode_count(self) -> int:
        with self._lock:
            return len(self._episodes)
