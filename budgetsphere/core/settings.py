"""Router runtime configuration.

Values are read from the process environment (after `load_dotenv()`) by
`RouterSettings.from_env()`. Tests and embedding applications can construct
`RouterSettings` directly instead.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class RouterSettings:
    """Tunable limits for routing, memory snapshots, and feedback delivery.

    Attributes:
        handler_timeout_seconds: Deadline for one handler execution.
        memory_dir: Directory for JSON memory files, or `None` for in-process only.
        max_context_episodes: Episode cap per memory snapshot.
        max_context_concepts: Concept cap per memory snapshot.
        max_context_procedures: Procedure cap per memory snapshot.
        min_context_episodes: Episode count at which a snapshot counts as sufficient.
        feedback_write_attempts: Delivery attempts per queued feedback write.
    """

    handler_timeout_seconds: float = 60.0
    memory_dir: str | None = None
    max_context_episodes: int = 10
    max_context_concepts: int = 5
    max_context_procedures: int = 5
    min_context_episodes: int = 1
    feedback_write_attempts: int = 3

    @classmethod
    def from_env(cls) -> "RouterSettings":
        return cls(
            handler_timeout_seconds=_env_float("HANDLER_TIMEOUT_SECONDS", 60.0),
            memory_dir=os.getenv("MEMORY_DIR") or None,
            max_context_episodes=_env_int("MAX_CONTEXT_EPISODES", 10),
            max_context_concepts=_env_int("MAX_CONTEXT_CONCEPTS", 5),
            max_context_procedures=_env_int("MAX_CONTEXT_PROCEDURES", 5),
            min_context_episodes=_env_int("MIN_CONTEXT_EPISODES", 1),
            feedback_write_attempts=_env_int("FEEDBACK_WRITE_ATTEMPTS", 3),
        )
