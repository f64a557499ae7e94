"""Routing error taxonomy.

Propagation policy:
    - `ValidationError` and `NoCapableHandler` are pre-execution hard stops and are
      raised to the caller of `Router.route`.
    - `MemoryUnavailable` is always recovered locally (routing proceeds without
      memory, feedback writes are logged and dropped).
    - `HandlerExecutionError` and `HandlerTimeout` are converted into structured
      failure responses that keep the routing metadata.
"""

from enum import Enum


class FailureKind(str, Enum):
    """Post-selection failure categories attached to failure responses."""

    HANDLER_EXECUTION_ERROR = "handler_execution_error"
    HANDLER_TIMEOUT = "handler_timeout"


class RoutingError(Exception):
    """Base class for every routing-layer error."""

    user_message = "The request could not be processed."

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


class ValidationError(RoutingError):
    """Malformed or empty request, rejected before routing."""

    user_message = "The request is invalid."

    def __init__(self, detail: str = "", errors: list | None = None):
        super().__init__(detail)
        self.errors = errors or []


class NoCapableHandler(RoutingError):
    """No registered handler accepted the request."""

    user_message = "No suitable agent found for this request."


class MemoryUnavailable(RoutingError):
    """Memory context build or feedback write failed."""

    user_message = "Memory is temporarily unavailable."


class HandlerExecutionError(RoutingError):
    """The selected handler or its text-generation collaborator failed."""

    failure_kind = FailureKind.HANDLER_EXECUTION_ERROR
    user_message = "An error occurred while processing your request."

    def __init__(self, handler_name: str, detail: str = ""):
        super().__init__(detail)
        self.handler_name = handler_name


class HandlerTimeout(HandlerExecutionError):
    """The selected handler exceeded the configured deadline."""

    failure_kind = FailureKind.HANDLER_TIMEOUT
    user_message = "The request took too long to process. Please try again."
