"""
Error taxonomy surfaced by the resource client.

Transport failures, server-reported failures and local decode failures are
distinct exception types so callers can tell "server unreachable" apart from
"server said no" and "server answered with an unexpected shape".
"""

from enum import Enum
from typing import Optional

from kubeclient.meta import Status, StatusCause


class ErrorKind(str, Enum):
    """Error categories."""
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    ALREADY_EXISTS = "AlreadyExists"
    INVALID = "Invalid"
    TIMEOUT = "Timeout"
    TRANSPORT_FAILURE = "TransportFailure"
    DECODE_FAILURE = "DecodeFailure"
    UNAUTHORIZED = "Unauthorized"
    FORBIDDEN = "Forbidden"
    SERVER_ERROR = "ServerError"
    AGGREGATE = "Aggregate"


class ApiError(Exception):
    """Base error carrying the kind, the failed call and the server detail."""

    kind: ErrorKind = ErrorKind.SERVER_ERROR

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        name: Optional[str] = None,
        code: Optional[int] = None,
        reason: Optional[str] = None,
        causes: Optional[list[StatusCause]] = None,
        status: Optional[Status] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.name = name
        self.code = code
        self.reason = reason
        self.causes = causes or []
        self.status = status

    @property
    def cause(self) -> Optional[BaseException]:
        """The underlying exception, if any."""
        return self.__cause__

    def __str__(self) -> str:
        context = " ".join(part for part in (self.operation, self.name) if part)
        if context:
            return f"{self.kind.value}: {context}: {self.message}"
        return f"{self.kind.value}: {self.message}"


class NotFound(ApiError):
    kind = ErrorKind.NOT_FOUND


class Conflict(ApiError):
    """Stale resourceVersion or failed precondition."""
    kind = ErrorKind.CONFLICT


class AlreadyExists(ApiError):
    kind = ErrorKind.ALREADY_EXISTS


class Invalid(ApiError):
    """Schema or validation failure, including malformed patches."""
    kind = ErrorKind.INVALID


class Timeout(ApiError):
    kind = ErrorKind.TIMEOUT


class TransportFailure(ApiError):
    kind = ErrorKind.TRANSPORT_FAILURE


class DecodeFailure(ApiError):
    kind = ErrorKind.DECODE_FAILURE


class Unauthorized(ApiError):
    kind = ErrorKind.UNAUTHORIZED


class Forbidden(ApiError):
    kind = ErrorKind.FORBIDDEN


class ServerError(ApiError):
    kind = ErrorKind.SERVER_ERROR


class AggregateError(ApiError):
    """Several independent per-item failures, e.g. from DeleteCollection."""

    kind = ErrorKind.AGGREGATE

    def __init__(self, errors: list[ApiError], operation: Optional[str] = None, **kwargs):
        message = "; ".join(str(e) for e in errors) or "aggregate failure"
        super().__init__(message, operation=operation, **kwargs)
        self.errors = errors

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self):
        return iter(self.errors)


_BY_REASON: dict[str, type[ApiError]] = {
    "NotFound": NotFound,
    "AlreadyExists": AlreadyExists,
    "Conflict": Conflict,
    "Invalid": Invalid,
    "BadRequest": Invalid,
    "UnsupportedMediaType": Invalid,
    "RequestEntityTooLarge": Invalid,
    "Timeout": Timeout,
    "ServerTimeout": Timeout,
    "Unauthorized": Unauthorized,
    "Forbidden": Forbidden,
    "Gone": Conflict,
}

_BY_CODE: dict[int, type[ApiError]] = {
    400: Invalid,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    408: Timeout,
    409: Conflict,
    410: Conflict,
    413: Invalid,
    415: Invalid,
    422: Invalid,
    504: Timeout,
}


def error_class(code: Optional[int], reason: Optional[str]) -> type[ApiError]:
    """Pick the taxonomy class for a server reply, reason first."""
    if reason in _BY_REASON:
        return _BY_REASON[reason]
    if code in _BY_CODE:
        return _BY_CODE[code]
    return ServerError


def error_from_status(
    status: Status,
    operation: Optional[str] = None,
    name: Optional[str] = None,
) -> ApiError:
    """Translate a decoded failure ``Status`` into an exception."""
    details = status.details
    causes = details.causes if details else []
    if name is None and details is not None:
        name = details.name
    message = status.message or status.reason or "unknown error"
    cls = error_class(status.code, status.reason)

    # Per-item failures reported against a collection keep their own kind.
    # Classified failures (e.g. a 422 with field causes) concern the request itself.
    if operation == "delete_collection" and causes and cls is ServerError:
        errors = [
            error_class(None, c.reason)(
                c.message or c.reason or "unknown error",
                operation="delete",
                name=c.field,
                reason=c.reason,
            )
            for c in causes
        ]
        return AggregateError(
            errors,
            operation=operation,
            code=status.code,
            reason=status.reason,
            causes=causes,
            status=status,
        )

    return cls(
        message,
        operation=operation,
        name=name,
        code=status.code,
        reason=status.reason,
        causes=causes,
        status=status,
    )
