"""Typed, time-sortable identifiers for messages, branches and conversations."""

from __future__ import annotations

import logging
import random
import re
import secrets
import string
import time
from enum import Enum

LOGGER = logging.getLogger(__name__)

SUFFIX_LENGTH = 9
SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class IdKind(str, Enum):
    MESSAGE = "message"
    CONVERSATION = "conversation"
    BRANCH = "branch"


PREFIXES: dict[IdKind, str] = {
    IdKind.MESSAGE: "msg",
    IdKind.CONVERSATION: "conv",
    IdKind.BRANCH: "branch",
}

PATTERNS: dict[IdKind, re.Pattern[str]] = {
    kind: re.compile(rf"^{prefix}_\d+_[a-z0-9]{{{SUFFIX_LENGTH}}}$")
    for kind, prefix in PREFIXES.items()
}


def _random_suffix(length: int = SUFFIX_LENGTH) -> str:
    """Draw a suffix from the OS CSPRNG.

    Falls back to ``random.SystemRandom`` and finally to the Mersenne
    Twister only when no OS entropy source exists; each downgrade is logged.
    """
    try:
        return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))
    except NotImplementedError:
        LOGGER.warning("secrets unavailable; falling back to random.SystemRandom for ids")
    try:
        rng: random.Random = random.SystemRandom()
        return "".join(rng.choice(SUFFIX_ALPHABET) for _ in range(length))
    except NotImplementedError:
        LOGGER.warning("No OS entropy source; ids use a non-cryptographic generator")
    rng = random.Random()
    return "".join(rng.choice(SUFFIX_ALPHABET) for _ in range(length))


def _coerce_kind(kind: IdKind | str) -> IdKind | None:
    try:
        return IdKind(kind)
    except ValueError:
        return None


def generate_id(kind: IdKind | str) -> str:
    """Return ``<prefix>_<epoch-ms>_<9-char suffix>`` for the given kind."""
    resolved = _coerce_kind(kind)
    if resolved is None:
        raise ValueError(f"Unknown id kind: {kind!r}")
    timestamp = int(time.time() * 1000)
    return f"{PREFIXES[resolved]}_{timestamp}_{_random_suffix()}"


def generate_message_id() -> str:
    return generate_id(IdKind.MESSAGE)


def generate_branch_id() -> str:
    return generate_id(IdKind.BRANCH)


def generate_conversation_id() -> str:
    return generate_id(IdKind.CONVERSATION)


def validate_id(value: object, kind: IdKind | str) -> bool:
    """Return True if ``value`` has the shape of an id of ``kind``."""
    if not isinstance(value, str) or not value:
        return False
    resolved = _coerce_kind(kind)
    if resolved is None:
        return False
    return PATTERNS[resolved].match(value) is not None


def timestamp_of(value: str) -> int | None:
    """Extract the embedded epoch milliseconds, or None if unparseable."""
    if not isinstance(value, str):
        return None
    parts = value.split("_")
    if len(parts) < 2:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None
