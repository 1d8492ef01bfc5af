"""Branch and conversation names with deterministic fallbacks.

Naming never blocks the user's action: any failure of the naming
collaborator is logged and replaced by a fallback name.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Callable

from branchchat.validation import validate_selected_text

if TYPE_CHECKING:
    from branchchat.agent_client import ChatClient

LOGGER = logging.getLogger(__name__)

DEFAULT_BRANCH_NAMES = (
    "Discussion Branch",
    "Topic Exploration",
    "Deep Dive",
    "Follow-up",
    "Alternative View",
    "Detailed Analysis",
)
DEFAULT_CONVERSATION_NAME = "New Conversation"

BRANCH_NAME_DISPLAY_LIMIT = 25
CONVERSATION_NAME_DISPLAY_LIMIT = 30


def clean_name(raw: str, limit: int) -> str:
    """Strip quotes and whitespace; shorten past ``limit`` with '...'."""
    name = raw.replace('"', "").replace("'", "").strip()
    if len(name) > limit:
        name = name[:limit] + "..."
    return name


def or_else(produce: Callable[[], str], fallback: Callable[[], str], what: str) -> str:
    """Return ``produce()`` unless it fails or yields nothing usable."""
    try:
        name = produce()
    except Exception as exc:
        LOGGER.warning("%s generation failed, using fallback: %s", what, exc)
        return fallback()
    if not name:
        LOGGER.warning("%s generation returned unusable %r, using fallback", what, name)
        return fallback()
    return name


class BranchNamer:
    """Names branches and conversations through a ChatClient."""

    def __init__(self, client: ChatClient | None, rng: random.Random | None = None) -> None:
        self.client = client
        self._rng = rng or random.Random()

    def default_branch_name(self) -> str:
        return self._rng.choice(DEFAULT_BRANCH_NAMES)

    def branch_name(
        self,
        last_user_message: str,
        last_assistant_message: str,
        selected_text: str | None = None,
    ) -> str:
        client = self.client
        if client is None:
            return self.default_branch_name()

        def produce() -> str:
            selection = validate_selected_text(selected_text) if selected_text else None
            raw = client.summarize_branch_name(
                last_user_message, last_assistant_message, selection
            )
            return clean_name(raw, BRANCH_NAME_DISPLAY_LIMIT)

        return or_else(produce, self.default_branch_name, "Branch name")

    def conversation_name(self, context: str) -> str:
        client = self.client
        if client is None:
            return DEFAULT_CONVERSATION_NAME

        def produce() -> str:
            raw = client.summarize_conversation_name(context)
            return clean_name(raw, CONVERSATION_NAME_DISPLAY_LIMIT)

        return or_else(produce, lambda: DEFAULT_CONVERSATION_NAME, "Conversation name")
