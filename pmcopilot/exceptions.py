"""
Typed exceptions for pmcopilot.

Provides structured error handling with:
- PMCopilotError: Base exception for all pmcopilot errors
- ConfigError: Configuration and validation errors
- ProviderError: LLM provider communication errors
- ObservabilityError: Tracing service errors

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PMCopilotError(Exception):
    """Base exception for all pmcopilot errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(PMCopilotError):
    """Configuration or validation error.

    Raised when:
    - A retry policy has out-of-range values
    - An environment variable cannot be parsed

    Examples:
        ConfigError("max_retries must be >= 1", details={"max_retries": 0})
    """

    pass


class ProviderError(PMCopilotError):
    """LLM provider communication error.

    Attributes:
        provider: Name of the provider that failed
        status_code: HTTP status code if available
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if provider:
            details["provider"] = provider
        if status_code:
            details["status_code"] = status_code

        self.provider = provider
        self.status_code = status_code

        super().__init__(message, code=code, details=details)


class ObservabilityError(PMCopilotError):
    """Tracing service rejected a request.

    Raised by the ingestion client; the emitter absorbs it so it never
    reaches request handlers.

    Attributes:
        status_code: HTTP status code returned by the service
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if status_code:
            details["status_code"] = status_code

        self.status_code = status_code

        super().__init__(message, code=code, details=details)


__all__ = [
    "PMCopilotError",
    "ConfigError",
    "ProviderError",
    "ObservabilityError",
]
