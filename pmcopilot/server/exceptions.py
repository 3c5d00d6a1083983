"""
HTTP exception types for the API server.
"""

from typing import Optional


class APIError(Exception):
    """Base exception for API errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, request_id: Optional[str] = None) -> None:
        self.message = message
        self.request_id = request_id
        super().__init__(message)


class ValidationError(APIError):
    """Request validation failed."""

    status_code = 400
    code = "validation_error"


class NotFoundError(APIError):
    """Requested resource does not exist."""

    status_code = 404
    code = "not_found"


class ModelError(APIError):
    """Error from the underlying LLM provider."""

    status_code = 502
    code = "model_error"
