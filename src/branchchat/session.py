"""High-level orchestration of a branching chat session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from branchchat.config import ChatConfig
from branchchat.errors import RateLimitError, ValidationError
from branchchat.models import Branch, Message, Sender
from branchchat.naming import BranchNamer
from branchchat.validation import RateLimiter, validate_message

if TYPE_CHECKING:
    from branchchat.agent_client import ChatClient
    from branchchat.registry import ConversationRegistry

LOGGER = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 60.0
MESSAGE_RATE_LIMIT_ERROR = "Too many messages. Please wait a moment before sending another."
BRANCH_RATE_LIMIT_ERROR = "Too many branches created. Please wait a moment."


class ChatSession:
    """Sends messages and creates branches on top of a registry.

    The registry holds the state; this class adds the completion round trip,
    automatic conversation titles and per-minute rate limits.
    """

    def __init__(
        self,
        registry: ConversationRegistry,
        client: ChatClient,
        namer: BranchNamer | None = None,
        config: ChatConfig | None = None,
    ) -> None:
        self.registry = registry
        self.client = client
        self.config = config or ChatConfig()
        self.namer = namer or BranchNamer(client)
        self.message_limiter = RateLimiter(
            self.config.messages_per_minute, RATE_LIMIT_WINDOW_SECONDS
        )
        self.branch_limiter = RateLimiter(
            self.config.branches_per_minute, RATE_LIMIT_WINDOW_SECONDS
        )

    def _ensure_conversation(self) -> None:
        if self.registry.get_current() is None:
            LOGGER.info("No active conversation, starting one")
            self.registry.create_conversation(self.config.default_title)

    def send(self, content: str) -> Message:
        """Send a user message on the focused branch and return the reply.

        Raises:
            ValidationError: The message is empty or too long.
            RateLimitError: Too many messages in the last minute.
            ApiError: The completion failed. The user message is kept.
        """
        validate_message(content)
        self._ensure_conversation()
        if not self.message_limiter.is_allowed():
            raise RateLimitError(MESSAGE_RATE_LIMIT_ERROR, status_code=429)

        conversation = self.registry.resolve()
        branch_id = conversation.current_branch
        user_message = self.registry.append_message(content, Sender.USER, branch_id)

        transcript = self.registry.transcript(branch_id)
        reply = self.client.complete(transcript, max_tokens=self.config.max_tokens)
        assistant_message = self.registry.append_message(reply, Sender.ASSISTANT, branch_id)

        if not conversation.title_generated:
            self._name_conversation(user_message, assistant_message)
        return assistant_message

    def _name_conversation(self, user_message: Message, assistant_message: Message) -> None:
        conversation = self.registry.resolve()
        context = f"User: {user_message.content}\nAssistant: {assistant_message.content}"
        title = self.namer.conversation_name(context)
        try:
            self.registry.rename_conversation(conversation.id, title, generated=True)
        except ValidationError as exc:
            LOGGER.warning("Generated title %r rejected: %s", title, exc)
            conversation.title_generated = True
            self.registry.save()
            return
        LOGGER.info("Named conversation %s %r", conversation.id, title)

    def branch_from(
        self,
        message_id: str,
        selected_text: str | None = None,
        title: str | None = None,
    ) -> Branch:
        """Fork the focused branch at ``message_id`` and focus the fork.

        Without an explicit ``title`` the branch is named from the message
        and the user turn that preceded it.

        Raises:
            ValidationError: Bad id, title or selection, or unknown message.
            RateLimitError: Too many branches in the last minute.
        """
        conversation = self.registry.resolve()
        branch = conversation.get_branch(conversation.current_branch)
        if branch is None:
            raise ValidationError("Current branch not found", "branch_id")
        index = branch.index_of(message_id)
        if index == -1:
            raise ValidationError("Message not found in current branch", "message_id")
        if not self.branch_limiter.is_allowed():
            raise RateLimitError(BRANCH_RATE_LIMIT_ERROR, status_code=429)

        if title is None:
            source = branch.messages[index]
            last_user = next(
                (
                    message.content
                    for message in reversed(branch.messages[:index])
                    if message.sender is Sender.USER
                ),
                "",
            )
            title = self.namer.branch_name(last_user, source.content, selected_text)

        return self.registry.fork_from_message(message_id, title)
