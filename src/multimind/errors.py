"""
multimind: Error taxonomy shared by clients, the circuit breaker and the engine.

Every failure surfaced to callers is an ``APIError`` subclass carrying an
HTTP-like ``status`` and a ``retryable`` flag. The engine uses both to decide
whether a failed request is re-queued.
"""

from __future__ import annotations

from typing import Any

# Statuses the engine never re-queues
NON_RETRYABLE_STATUSES = frozenset({400, 401, 403, 404})

SERVER_ERROR_MESSAGES: dict[int, str] = {
    500: "The server encountered an error. This could be temporary - please try again.",
    502: "The server is temporarily unavailable. Please try again in a few moments.",
    503: "The service is currently unavailable. Please try again later.",
    504: "The server took too long to respond. Please try again.",
}


class APIError(Exception):
    """Base error for everything the request pipeline raises.

    Attributes:
        message: Human-readable description.
        status: HTTP-like status code (0 for transport failures, None if unknown).
        code: Machine-readable error code, e.g. ``"invalid_api_key"``.
        type: Provider-reported error type, if any.
    """

    default_status: int | None = None
    default_code: str | None = None

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: str | None = None,
        type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status if status is not None else self.default_status
        self.code = code if code is not None else self.default_code
        self.type = type

    @property
    def retryable(self) -> bool:
        """Whether a retry has any chance of a different outcome."""
        return self.status not in NON_RETRYABLE_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "type": self.type,
        }

    def __str__(self) -> str:
        return f"{self.message} ({self.status})" if self.status is not None else self.message


class ValidationError(APIError):
    """Bad input detected on the client side. Never retried."""

    default_status = 400
    default_code = "invalid_request"


class AuthError(APIError):
    """Missing or malformed credential. Never retried."""

    default_status = 401
    default_code = "invalid_api_key"


class ForbiddenError(APIError):
    default_status = 403
    default_code = "forbidden"


class NotFoundError(APIError):
    default_status = 404
    default_code = "not_found"


class ServerError(APIError):
    """Upstream 5xx."""

    default_status = 500
    default_code = "server_error"

    @property
    def retryable(self) -> bool:
        return True


class NetworkError(APIError):
    """Transport-level failure (DNS, connection reset, socket timeout)."""

    default_status = 0
    default_code = "network_error"

    @property
    def retryable(self) -> bool:
        return True


class RequestTimeoutError(APIError):
    """The request exceeded its time budget."""

    default_status = 408
    default_code = "timeout"

    @property
    def retryable(self) -> bool:
        return False


class RequestCancelledError(APIError):
    """The caller aborted the request."""

    default_code = "cancelled"

    def __init__(self, message: str = "Request cancelled", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)

    @property
    def retryable(self) -> bool:
        return False


class CircuitOpenError(APIError):
    """The provider's circuit breaker is rejecting calls."""

    default_status = 503
    default_code = "circuit_open"

    @property
    def retryable(self) -> bool:
        return False


class InvalidResponseError(APIError):
    """The provider answered 2xx but the body holds no assistant text."""

    default_status = 500
    default_code = "invalid_response"

    @property
    def retryable(self) -> bool:
        return False


class QueueFullError(APIError):
    default_status = 503
    default_code = "queue_full"


class NotRunningError(APIError):
    default_code = "not_running"


class AlreadyRunningError(APIError):
    default_code = "already_running"


class ModelListingNotSupportedError(APIError):
    """Raised instead of returning ``[]`` so callers can tell the two apart."""

    default_code = "not_implemented"

    @property
    def retryable(self) -> bool:
        return False


_STATUS_ERRORS: dict[int, type[APIError]] = {
    400: ValidationError,
    401: AuthError,
    403: ForbiddenError,
    404: NotFoundError,
    408: RequestTimeoutError,
}


def error_from_status(
    status: int,
    message: str | None = None,
    code: str | None = None,
    type: str | None = None,
) -> APIError:
    """Build the error class matching an HTTP status."""
    if message is None:
        message = SERVER_ERROR_MESSAGES.get(status, f"Request failed with status {status}")
    if status >= 500:
        return ServerError(message, status=status, code=code, type=type)
    cls = _STATUS_ERRORS.get(status, APIError)
    return cls(message, status=status, code=code, type=type)


def describe_error(error: BaseException, provider_name: str | None = None) -> str:
    """Turn an error into guidance suitable for showing to an end user."""
    name = provider_name or "the provider"
    if isinstance(error, AuthError):
        return f"Authentication with {name} failed. Please check your API key in settings."
    if isinstance(error, ForbiddenError):
        return f"Your {name} account does not have access to this model."
    if isinstance(error, NotFoundError):
        return f"The selected model was not found on {name}. Try choosing another model."
    if isinstance(error, ValidationError):
        return error.message
    if isinstance(error, RequestCancelledError):
        return "The request was cancelled."
    if isinstance(error, (RequestTimeoutError, QueueFullError)):
        return "The request could not be completed in time. Please try again."
    if isinstance(error, CircuitOpenError):
        return f"{name} is failing repeatedly; requests are paused for a short while."
    if isinstance(error, NetworkError):
        return "Network error. Please check your internet connection."
    if isinstance(error, APIError):
        return error.message
    return f"Unexpected error: {error}"
