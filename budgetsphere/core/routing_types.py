"""Request, decision, and response contracts for `budgetsphere.core`.

Architectural role:
    Defines the immutable value types that flow through the routing pipeline:
    `Request` -> `CandidateScore` (per handler) -> `RoutingDecision` -> `Outcome`
    -> `Response`.

Validation:
    `Request` is a frozen pydantic model. Field validation failures are converted to
    `budgetsphere.core.errors.ValidationError` by `Request.parse` so callers never
    depend on pydantic's exception type.

Determinism:
    All types are structural. `Request` derivations (`effective_topic`,
    `is_complex_planning_request`, ...) are pure functions of the field values.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from budgetsphere.core.errors import FailureKind, ValidationError


# Weighted-sum coefficients of the selector. Order matches `CandidateScore` terms.
STATIC_CONFIDENCE_WEIGHT = 0.4
CAPABILITY_MATCH_WEIGHT = 0.3
HISTORICAL_MATCH_WEIGHT = 0.2
TOPIC_SCORE_WEIGHT = 0.1

TERM_LABELS = {
    "static_confidence": "static confidence",
    "capability_match": "capability match",
    "historical_match": "historical success",
    "topic_score": "topic satisfaction history",
}

RequestKind = Literal["calculation", "planning", "reflection"]


def clamp_unit(value: float) -> float:
    """Clamp a numeric score into the closed interval [0, 1]."""
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, float(value)))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Request(BaseModel):
    """One inbound user request plus its optional structured hints.

    Attributes:
        message: User text. Stripped; must be non-empty.
        session_id: Stable session key used by the memory store.
        user_id: Stable user key used by the memory store.
        use_memory: Whether a memory snapshot biases routing and prompting.
        store_experience: Whether a successful outcome is written back to memory.
        topic: Opaque topic label supplied by an upstream classifier.
        preferred_handler: Explicit handler override.
        request_kind: Declared request category hint.
        monthly_income, monthly_expenses, age, risk_tolerance, goal,
        financial_goals: Financial profile fields used for capability checks and
            prompt context.
        context: Free-form additional context forwarded to handlers.
        user_feedback, previous_satisfaction: Feedback about the previous answer in
            this session; applied to the latest stored episode before routing.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    message: str
    session_id: str = "default"
    user_id: str = "anonymous"
    use_memory: bool = True
    store_experience: bool = True

    topic: str | None = None
    preferred_handler: str | None = None
    request_kind: RequestKind | None = None

    monthly_income: float | None = Field(default=None, gt=0)
    monthly_expenses: float | None = Field(default=None, ge=0)
    age: int | None = Field(default=None, ge=0, le=130)
    risk_tolerance: str | None = None
    goal: str | None = None
    financial_goals: list[str] | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    user_feedback: str | None = None
    previous_satisfaction: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message must not be empty")
        return value

    @field_validator("session_id", "user_id")
    @classmethod
    def _identifier_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("identifier must not be empty")
        return value

    @field_validator("topic", "preferred_handler", "goal", "user_feedback")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("request_kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value

    @field_validator("risk_tolerance")
    @classmethod
    def _normalize_risk(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip().upper()

    @classmethod
    def parse(cls, data: "Request | dict[str, Any]") -> "Request":
        """Build a validated request, raising the routing `ValidationError`.

        Args:
            data: Existing `Request` (returned unchanged) or raw field mapping.

        Returns:
            Validated, immutable `Request`.

        Raises:
            ValidationError: For missing/blank message, blank identifiers,
                out-of-range numeric fields, unknown fields, or non-mapping input.
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise ValidationError(f"request must be a mapping, got {type(data).__name__}")
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as err:
            first = err.errors()[0] if err.errors() else {}
            location = ".".join(str(part) for part in first.get("loc", ()))
            detail = f"{location}: {first.get('msg', 'invalid value')}" if location else str(err)
            raise ValidationError(detail, errors=err.errors()) from err

    # -----------------------------------------------------
    # Derived views
    # -----------------------------------------------------

    @property
    def lowered_message(self) -> str:
        return self.message.lower()

    @property
    def effective_topic(self) -> str | None:
        """Topic key used for topic-conditioned history; opaque, never derived."""
        return self.topic

    @property
    def is_complex_planning_request(self) -> bool:
        return self.request_kind == "planning" or len(self.financial_goals or []) > 1

    @property
    def is_reflection_request(self) -> bool:
        return self.request_kind == "reflection"

    @property
    def has_financial_context(self) -> bool:
        return (
            self.monthly_income is not None
            or self.monthly_expenses is not None
            or self.goal is not None
            or bool(self.context)
        )

    @property
    def has_feedback(self) -> bool:
        return self.user_feedback is not None or self.previous_satisfaction is not None

    @property
    def hints(self) -> dict[str, Any]:
        """Free-form context overlaid with the typed hints and profile fields.

        Typed fields win over same-named `context` keys; unset fields are omitted.
        """
        data: dict[str, Any] = dict(self.context)
        for key in (
            "topic",
            "request_kind",
            "preferred_handler",
            "monthly_income",
            "monthly_expenses",
            "age",
            "risk_tolerance",
            "goal",
            "financial_goals",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class CandidateScore:
    """Score breakdown for one candidate handler.

    All sub-scores and `total` are in [0, 1]. `total` is the clamped weighted sum.
    """

    handler_name: str
    static_confidence: float
    capability_match: float
    historical_match: float
    topic_score: float
    total: float

    def contributions(self) -> dict[str, float]:
        """Return each term's weighted contribution to `total`."""
        return {
            "static_confidence": STATIC_CONFIDENCE_WEIGHT * self.static_confidence,
            "capability_match": CAPABILITY_MATCH_WEIGHT * self.capability_match,
            "historical_match": HISTORICAL_MATCH_WEIGHT * self.historical_match,
            "topic_score": TOPIC_SCORE_WEIGHT * self.topic_score,
        }

    def dominant_term(self) -> str:
        """Name of the largest weighted term; ties resolve in declaration order."""
        contributions = self.contributions()
        return max(contributions, key=lambda name: contributions[name])


@dataclass(frozen=True)
class RoutingDecision:
    """Selector output attached to every response produced after selection.

    Attributes:
        handler_name: Chosen handler.
        confidence: Winning total score, or `1.0` for an explicit override.
        reason: Human-readable, descriptive only.
        alternatives: Losing candidate names, best first.
        scores: Breakdown for every candidate, in rank order.
        overridden: Whether the preferred-handler hint decided the winner.
    """

    handler_name: str
    confidence: float
    reason: str
    alternatives: tuple[str, ...] = ()
    scores: tuple[CandidateScore, ...] = ()
    overridden: bool = False

    def score_for(self, handler_name: str) -> CandidateScore | None:
        for score in self.scores:
            if score.handler_name == handler_name:
                return score
        return None


@dataclass(frozen=True)
class Outcome:
    """Result of executing the chosen handler.

    Created once after execution. Only a later explicit feedback update amends the
    stored copy (satisfaction/feedback), never this object.
    """

    handler_name: str
    success: bool
    message: str
    reasoning: str
    action_taken: str | None = None
    satisfaction: float | None = None
    failure_kind: FailureKind | None = None
    recommendations: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class Response:
    """Route result returned to the transport layer."""

    success: bool
    message: str
    decision: RoutingDecision
    outcome: Outcome
    failure_kind: FailureKind | None = None
    memory_used: bool = False
    processing_time_ms: int = 0

    @property
    def handler_name(self) -> str:
        return self.decision.handler_name

    def to_dict(self) -> dict[str, Any]:
        """Serialize into a JSON-compatible mapping."""
        return {
            "success": self.success,
            "message": self.message,
            "agent_used": self.decision.handler_name,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "routing": {
                "handler": self.decision.handler_name,
                "confidence": round(self.decision.confidence, 4),
                "reason": self.decision.reason,
                "alternatives": list(self.decision.alternatives),
                "overridden": self.decision.overridden,
            },
            "reasoning": self.outcome.reasoning,
            "action_taken": self.outcome.action_taken,
            "recommendations": list(self.outcome.recommendations),
            "memory_used": self.memory_used,
            "processing_time_ms": self.processing_time_ms,
            "timestamp": self.outcome.timestamp.isoformat(),
        }
