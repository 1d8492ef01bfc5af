"""Application exceptions and user-facing error messages."""

from __future__ import annotations

API_ERROR_MESSAGE = "Could not get a response. Please try again."
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again later."


class BranchChatError(Exception):
    """Base exception for conversation tree operations."""


class ValidationError(BranchChatError):
    """Malformed or out-of-bounds input. Raised before any mutation."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class ApiError(BranchChatError):
    """Raised when the completion server rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RateLimitError(ApiError):
    """Too many requests inside the rate limiter window."""


def format_error_for_user(error: Exception) -> str:
    """Turn an exception into a message fit for the end user."""
    if isinstance(error, ValidationError):
        return str(error)
    if isinstance(error, RateLimitError):
        return str(error)
    if isinstance(error, ApiError):
        return API_ERROR_MESSAGE
    return GENERIC_ERROR_MESSAGE
