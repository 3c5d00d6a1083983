"""
Failure classification for tracing service calls.

Classification decides one thing: whether the Retry Executor tries again.
It is best-effort routing, never a user-facing error code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorKind(str, Enum):
    """Low-cardinality error classification."""

    CONNECTION = "connection_error"
    AUTHENTICATION = "authentication_error"
    RATE_LIMIT = "rate_limit_error"
    VALIDATION = "validation_error"
    UNKNOWN = "unknown_error"


_AUTH_NEEDLES = ("unauthorized", "invalid key")

# First match wins.
_MESSAGE_RULES = (
    (ErrorKind.AUTHENTICATION, _AUTH_NEEDLES),
    (ErrorKind.RATE_LIMIT, ("rate limit", "too many requests")),
    (ErrorKind.CONNECTION, ("connection", "network")),
    (ErrorKind.VALIDATION, ("validation", "invalid")),
)

_STATUS_KINDS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTHENTICATION,
    403: ErrorKind.AUTHENTICATION,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMIT,
}


def _status_code(error: BaseException) -> Optional[int]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def _classify_structured(error: BaseException) -> Optional[ErrorKind]:
    if isinstance(error, httpx.TransportError):
        return ErrorKind.CONNECTION
    status = _status_code(error)
    if status is None:
        return None
    return _STATUS_KINDS.get(status)


def _classify_message(message: str) -> ErrorKind:
    lowered = message.lower()
    for kind, needles in _MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return kind
    return ErrorKind.UNKNOWN


def classify_error(error: Optional[BaseException]) -> ErrorKind:
    """
    Classify an exception into an ErrorKind.

    A message naming bad credentials is always an authentication failure,
    whatever carried it. Otherwise structured information (transport
    exception types, HTTP status codes) is preferred, and anything it cannot
    place falls back to case-insensitive substring matching on the message.

    Args:
        error: The exception raised by the operation, or None.

    Returns:
        ErrorKind for retry routing and logging.
    """
    if error is None:
        return ErrorKind.UNKNOWN
    message = str(error)
    lowered = message.lower()
    if any(needle in lowered for needle in _AUTH_NEEDLES):
        return ErrorKind.AUTHENTICATION
    kind = _classify_structured(error)
    if kind is not None:
        return kind
    return _classify_message(message)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ClassifiedError:
    """One failed attempt, as seen by the Retry Executor."""

    kind: ErrorKind
    message: str
    attempt_number: int
    timestamp_utc: str = field(default_factory=_utc_now_iso)

    @classmethod
    def from_exception(
        cls, error: Optional[BaseException], attempt_number: int
    ) -> "ClassifiedError":
        return cls(
            kind=classify_error(error),
            message="" if error is None else str(error),
            attempt_number=attempt_number,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp_utc,
            "retry_count": self.attempt_number,
        }
