"""Input sanitization, bounds checks and client-side rate limiting."""

from __future__ import annotations

import re
import time
from typing import Callable

from branchchat.errors import ValidationError

MIN_MESSAGE_LENGTH = 1
MAX_MESSAGE_LENGTH = 4000
BRANCH_NAME_MAX_LENGTH = 50
MAX_SELECTED_TEXT_LENGTH = 500

MESSAGE_TOO_SHORT = "Message cannot be empty."
MESSAGE_TOO_LONG = f"Message must be less than {MAX_MESSAGE_LENGTH} characters."

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_input(value: object) -> str:
    """Trim and strip markup-like fragments. Non-strings become ''."""
    if not isinstance(value, str):
        return ""
    cleaned = value.strip()
    cleaned = _ANGLE_BRACKETS.sub("", cleaned)
    cleaned = _JS_PROTOCOL.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    return cleaned


def validate_message(content: object) -> str:
    """Return sanitized message content or raise ValidationError."""
    if not content or not isinstance(content, str):
        raise ValidationError(MESSAGE_TOO_SHORT, "content")
    sanitized = sanitize_input(content)
    if len(sanitized) < MIN_MESSAGE_LENGTH:
        raise ValidationError(MESSAGE_TOO_SHORT, "content")
    if len(sanitized) > MAX_MESSAGE_LENGTH:
        raise ValidationError(MESSAGE_TOO_LONG, "content")
    return sanitized


def validate_title(title: object, field: str = "title") -> str:
    """Return a sanitized branch or conversation title."""
    if not title or not isinstance(title, str):
        raise ValidationError("Title is required", field)
    sanitized = sanitize_input(title)
    if not sanitized:
        raise ValidationError("Title cannot be empty", field)
    if len(sanitized) > BRANCH_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Title must be less than {BRANCH_NAME_MAX_LENGTH} characters", field
        )
    return sanitized


def validate_selected_text(text: object) -> str:
    """Return sanitized selected text used to seed a branch name."""
    if not text or not isinstance(text, str):
        raise ValidationError("Selected text is required", "selected_text")
    sanitized = sanitize_input(text)
    if not sanitized:
        raise ValidationError("Selected text cannot be empty", "selected_text")
    if len(sanitized) > MAX_SELECTED_TEXT_LENGTH:
        raise ValidationError(
            f"Selected text is too long (max {MAX_SELECTED_TEXT_LENGTH} characters)",
            "selected_text",
        )
    return sanitized


class RateLimiter:
    """Sliding-window request counter."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: list[float] = []

    def _prune(self, now: float) -> None:
        self._requests = [t for t in self._requests if now - t < self.window_seconds]

    def is_allowed(self) -> bool:
        """Record a request and return True if it fits in the window."""
        now = self._clock()
        self._prune(now)
        if len(self._requests) >= self.max_requests:
            return False
        self._requests.append(now)
        return True

    def remaining(self) -> int:
        self._prune(self._clock())
        return max(0, self.max_requests - len(self._requests))
