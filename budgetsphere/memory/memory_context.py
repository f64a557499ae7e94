"""Memory record types and the per-request `MemoryContext` snapshot.

Architectural role:
    Defines the three memory domains the router consumes:
    - `Episode`: one past request/response interaction with outcome metadata.
    - `Concept`: semantic knowledge used for prompt augmentation only.
    - `Procedure`: learned per-handler effectiveness statistics.

    `MemoryContext` is a bounded, read-only snapshot built for one request. It is
    never shared across requests and never mutated after construction.

Sufficiency rule:
    `has_sufficient_context()` is true iff the snapshot holds at least
    `min_episodes` episodes, or at least one concept or procedure.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


EFFECTIVE_MIN_USAGE = 2
EFFECTIVE_MIN_SUCCESS_RATE = 0.7
OPTIMIZATION_MIN_USAGE = 3
OPTIMIZATION_MAX_SUCCESS_RATE = 0.5
SATISFIED_THRESHOLD = 0.5
SUCCESS_PATTERN_MIN_SATISFACTION = 0.8


@dataclass(frozen=True)
class Episode:
    """Persisted record of one past interaction."""

    episode_id: str
    user_id: str
    session_id: str
    handler_name: str
    user_message: str
    response: str
    success: bool
    timestamp: datetime
    topic: str | None = None
    satisfaction: float | None = None
    feedback: str | None = None
    reasoning: str | None = None
    action_taken: str | None = None
    context_data: dict[str, Any] = field(default_factory=dict)

    @property
    def counts_as_success(self) -> bool:
        """Success flag, vetoed by an explicit low satisfaction rating."""
        if not self.success:
            return False
        return self.satisfaction is None or self.satisfaction >= SATISFIED_THRESHOLD

    @property
    def summary(self) -> str:
        status = "succeeded" if self.success else "failed"
        text = f"{self.handler_name} {status} on: {self.user_message[:80]}"
        if self.satisfaction is not None:
            text += f" (satisfaction {self.satisfaction:.2f})"
        return text

    def with_feedback(self, satisfaction: float | None, feedback: str | None) -> "Episode":
        """Return a copy with feedback fields amended; `None` keeps the old value."""
        return replace(
            self,
            satisfaction=self.satisfaction if satisfaction is None else satisfaction,
            feedback=self.feedback if feedback is None else feedback,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "episode_id": self.episode_id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "handler_name": self.handler_name,
            "user_message": self.user_message,
            "response": self.response,
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
            "topic": self.topic,
            "satisfaction": self.satisfaction,
            "feedback": self.feedback,
            "reasoning": self.reasoning,
            "action_taken": self.action_taken,
            "context_data": self.context_data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Episode":
        return cls(
            episode_id=data["episode_id"],
            user_id=data["user_id"],
            session_id=data["session_id"],
            handler_name=data["handler_name"],
            user_message=data.get("user_message", ""),
            response=data.get("response", ""),
            success=bool(data.get("success", False)),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            topic=data.get("topic"),
            satisfaction=data.get("satisfaction"),
            feedback=data.get("feedback"),
            reasoning=data.get("reasoning"),
            action_taken=data.get("action_taken"),
            context_data=dict(data.get("context_data") or {}),
        )


@dataclass(frozen=True)
class Concept:
    """Semantic knowledge entry (prompt augmentation only)."""

    user_id: str
    name: str
    definition: str
    usage_count: int = 0
    success_rate: float = 0.0

    @property
    def summary(self) -> str:
        return f"{self.name}: {self.definition}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "definition": self.definition,
            "usage_count": self.usage_count,
            "success_rate": self.success_rate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Concept":
        return cls(
            user_id=data["user_id"],
            name=data["name"],
            definition=data.get("definition", ""),
            usage_count=int(data.get("usage_count", 0)),
            success_rate=float(data.get("success_rate", 0.0)),
        )


@dataclass(frozen=True)
class Procedure:
    """Learned effectiveness of one handler for one user."""

    user_id: str
    name: str
    handler_pattern: str
    usage_count: int = 0
    success_count: int = 0

    @property
    def success_rate(self) -> float:
        if self.usage_count <= 0:
            return 0.0
        return self.success_count / self.usage_count

    @property
    def is_effective(self) -> bool:
        return (
            self.usage_count >= EFFECTIVE_MIN_USAGE
            and self.success_rate >= EFFECTIVE_MIN_SUCCESS_RATE
        )

    @property
    def needs_optimization(self) -> bool:
        return (
            self.usage_count >= OPTIMIZATION_MIN_USAGE
            and self.success_rate < OPTIMIZATION_MAX_SUCCESS_RATE
        )

    @property
    def improvement_recommendation(self) -> str:
        return (
            f"Past {self.handler_pattern} answers satisfied you in only "
            f"{self.success_rate:.0%} of {self.usage_count} cases; "
            "share more detail about your situation for better advice"
        )

    @property
    def summary(self) -> str:
        return f"{self.name} (success rate {self.success_rate:.1%}, used {self.usage_count}x)"

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "handler_pattern": self.handler_pattern,
            "usage_count": self.usage_count,
            "success_count": self.success_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Procedure":
        return cls(
            user_id=data["user_id"],
            name=data["name"],
            handler_pattern=data["handler_pattern"],
            usage_count=int(data.get("usage_count", 0)),
            success_count=int(data.get("success_count", 0)),
        )


@dataclass(frozen=True)
class MemoryContext:
    """Read-only memory snapshot for one request.

    Attributes:
        episodes: Most-relevant-first, bounded.
        concepts: Bounded, most-relevant-first.
        procedures: Bounded; the requesting handler's own procedures first.
        min_episodes: Sufficiency threshold for `has_sufficient_context`.
    """

    episodes: tuple[Episode, ...] = ()
    concepts: tuple[Concept, ...] = ()
    procedures: tuple[Procedure, ...] = ()
    min_episodes: int = 1

    def has_sufficient_context(self) -> bool:
        if len(self.episodes) >= self.min_episodes:
            return True
        return len(self.concepts) + len(self.procedures) >= 1

    @property
    def confidence_score(self) -> float:
        """Share of snapshot episodes that count as successful (0.0 when empty)."""
        if not self.episodes:
            return 0.0
        successes = sum(1 for episode in self.episodes if episode.counts_as_success)
        return successes / len(self.episodes)

    @property
    def success_patterns(self) -> list[str]:
        patterns: list[str] = []
        for episode in self.episodes:
            if (
                episode.success
                and episode.action_taken
                and (episode.satisfaction or 0.0) >= SUCCESS_PATTERN_MIN_SATISFACTION
            ):
                pattern = f"{episode.handler_name}:{episode.action_taken}"
                if pattern not in patterns:
                    patterns.append(pattern)
        return patterns

    @property
    def recommendations(self) -> list[str]:
        return [
            procedure.improvement_recommendation
            for procedure in self.procedures
            if procedure.needs_optimization
        ]

    @property
    def summary(self) -> str:
        return (
            f"{len(self.episodes)} relevant episodes, "
            f"{len(self.concepts)} concepts, "
            f"{len(self.procedures)} procedures"
        )

    def agent_context(self) -> str:
        """Render the snapshot as a prompt block."""
        lines: list[str] = []

        if self.episodes:
            lines.append("Relevant past interactions:")
            for episode in self.episodes[:3]:
                lines.append(f"- {episode.summary}")

        if self.concepts:
            lines.append("Known financial concepts:")
            for concept in self.concepts:
                lines.append(f"- {concept.summary}")

        effective = [p for p in self.procedures if p.is_effective]
        if effective:
            lines.append("Proven approaches:")
            for procedure in effective[:3]:
                lines.append(f"- {procedure.summary}")

        return "\n".join(lines)
