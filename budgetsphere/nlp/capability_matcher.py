"""Static capability matching between requests and handler categories.

Matching logic:
- Every handler declares at most one capability category.
- A category matches when the request's `request_kind` hint equals the category's
  kind, or when any category keyword occurs in the lowercased message.
- A matching category yields its `match` score, otherwise its `otherwise` score.

Score table (reproducibility contract):

    category             kind          match  otherwise
    quick_calculation    calculation   0.9    0.6
    strategic_planning   planning      0.9    0.3
    retrospective        reflection    0.9    0.2

Handlers without a category, or with an unknown one, score `DEFAULT_SCORE`.

Determinism:
- Pure function of request content and hints. Never touches memory.

Failure handling:
- Never raises; unknown content yields the category's default score.
"""

from dataclasses import dataclass

from budgetsphere.core.routing_types import Request


DEFAULT_SCORE = 0.5


@dataclass(frozen=True)
class CategoryProfile:
    """Keyword rule and fixed scores for one capability category."""

    name: str
    request_kind: str
    keywords: tuple[str, ...]
    match: float
    otherwise: float

    def matches(self, request: Request) -> bool:
        if request.request_kind == self.request_kind:
            return True
        message = request.lowered_message
        return any(keyword in message for keyword in self.keywords)


QUICK_CALCULATION = "quick_calculation"
STRATEGIC_PLANNING = "strategic_planning"
RETROSPECTIVE = "retrospective"


CATEGORY_PROFILES: dict[str, CategoryProfile] = {
    QUICK_CALCULATION: CategoryProfile(
        name=QUICK_CALCULATION,
        request_kind="calculation",
        keywords=("how much", "calculate", "what is", "quick", "simple"),
        match=0.9,
        otherwise=0.6,
    ),
    STRATEGIC_PLANNING: CategoryProfile(
        name=STRATEGIC_PLANNING,
        request_kind="planning",
        keywords=("plan", "strategy", "long-term", "retirement", "investment portfolio"),
        match=0.9,
        otherwise=0.3,
    ),
    RETROSPECTIVE: CategoryProfile(
        name=RETROSPECTIVE,
        request_kind="reflection",
        keywords=("analyze", "review", "performance", "progress"),
        match=0.9,
        otherwise=0.2,
    ),
}


def matched_categories(request: Request) -> list[str]:
    """Return names of every category the request matches, in table order."""
    return [name for name, profile in CATEGORY_PROFILES.items() if profile.matches(request)]


def score(handler, request: Request) -> float:
    """Score a handler's static suitability for a request.

    Args:
        handler: Object exposing an optional `category` attribute
            (normally a `HandlerDescriptor`).
        request: Validated request.

    Returns:
        Score in [0, 1] from the category table, or `DEFAULT_SCORE`.
    """
    profile = CATEGORY_PROFILES.get(getattr(handler, "category", None) or "")
    if profile is None:
        return DEFAULT_SCORE

    # Planning also matches complex multi-goal requests without keywords.
    if profile.name == STRATEGIC_PLANNING and request.is_complex_planning_request:
        return profile.match

    return profile.match if profile.matches(request) else profile.otherwise
