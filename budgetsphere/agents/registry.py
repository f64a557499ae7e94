"""Handler descriptors and the immutable handler registry.

Architectural role:
    A handler is a table entry of plain callables rather than a subclass:
    `(can_handle, static_confidence, execute)`. The registry is built once at
    startup and passed explicitly to the router; there is no global registry.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from budgetsphere.core.routing_types import Request, clamp_unit
from budgetsphere.memory.memory_context import MemoryContext


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerResult:
    """Successful handler output."""

    message: str
    reasoning: str
    action_taken: str
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class HandlerDescriptor:
    """One routable handler.

    Attributes:
        name: Unique handler name.
        description: Human-readable capability summary.
        category: Capability category key used by the capability matcher.
        can_handle: Predicate deciding candidacy.
        static_confidence: Handler's own confidence in [0, 1].
        execute: Processing contract; raises on failure.
    """

    name: str
    description: str
    can_handle: Callable[[Request], bool]
    static_confidence: Callable[[Request], float]
    execute: Callable[[Request, MemoryContext | None], HandlerResult]
    category: str | None = None
    specialties: tuple[str, ...] = field(default=())

    def confidence(self, request: Request) -> float:
        return clamp_unit(self.static_confidence(request))

    def info(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "specialties": list(self.specialties),
        }


class HandlerRegistry:
    """Read-only, registration-ordered handler table."""

    def __init__(self, handlers: Iterable[HandlerDescriptor]):
        table: dict[str, HandlerDescriptor] = {}
        for handler in handlers:
            if handler.name in table:
                raise ValueError(f"duplicate handler name: {handler.name}")
            table[handler.name] = handler
        self._handlers = table

    def __iter__(self) -> Iterator[HandlerDescriptor]:
        return iter(self._handlers.values())

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def get(self, name: str) -> HandlerDescriptor | None:
        return self._handlers.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._handlers)

    def candidates(self, request: Request) -> list[HandlerDescriptor]:
        """Handlers whose `can_handle` accepts the request.

        A predicate that raises is logged and treated as `False`.
        """
        accepted = []
        for handler in self._handlers.values():
            try:
                capable = bool(handler.can_handle(request))
            except Exception:
                logger.exception("can_handle failed for handler %s", handler.name)
                capable = False
            if capable:
                accepted.append(handler)
        return accepted
