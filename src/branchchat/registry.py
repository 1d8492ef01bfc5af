"""The conversation registry: every conversation plus the focus cursor."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from branchchat import tree
from branchchat.errors import ValidationError
from branchchat.ids import IdKind, generate_conversation_id, generate_message_id, validate_id
from branchchat.models import (
    MAIN_BRANCH_ID,
    MAIN_BRANCH_TITLE,
    Branch,
    Conversation,
    Message,
    MessageLocation,
    Sender,
    StarredMessage,
    utcnow,
)
from branchchat.storage.registry_store import RegistryState
from branchchat.tree import TreeNode
from branchchat.validation import validate_message, validate_title

if TYPE_CHECKING:
    from branchchat.storage.registry_store import RegistryStore

LOGGER = logging.getLogger(__name__)

DEFAULT_CONVERSATION_TITLE = "New Conversation"


def _coerce_sender(sender: Sender | str) -> Sender:
    try:
        return Sender(sender)
    except ValueError:
        raise ValidationError("Invalid sender type", "sender") from None


def _next_timestamp(conversation: Conversation) -> datetime:
    """Current time, nudged past the conversation's newest message.

    Keeps timestamps strictly increasing in append order, so sorting by
    timestamp reproduces the order messages were written in.
    """
    now = utcnow()
    latest = max(
        (
            message.timestamp
            for branch in conversation.branches.values()
            for message in branch.messages
        ),
        default=None,
    )
    if latest is not None and now <= latest:
        return latest + timedelta(microseconds=1)
    return now


class ConversationRegistry:
    """Owns all conversations of one session and persists every mutation.

    Operations that address a conversation take an optional
    ``conversation_id``; when omitted the current conversation is used.
    """

    def __init__(self, store: RegistryStore | None = None) -> None:
        """
        Args:
            store: Persistence adapter. ``None`` keeps state in memory only.
        """
        self.store = store
        self.conversations: dict[str, Conversation] = {}
        self.current_conversation_id: str | None = None
        self.current_branch: str | None = None

    @classmethod
    def open(
        cls, store: RegistryStore | None, default_title: str = DEFAULT_CONVERSATION_TITLE
    ) -> ConversationRegistry:
        """Load stored state, or start fresh with one new conversation."""
        registry = cls(store)
        if not registry.load():
            registry.create_conversation(default_title)
        return registry

    # Persistence

    def snapshot(self) -> RegistryState:
        return RegistryState(
            conversations=self.conversations,
            current_conversation_id=self.current_conversation_id,
            current_branch=self.current_branch,
        )

    def save(self) -> bool:
        if self.store is None:
            return True
        return self.store.save(self.snapshot())

    def load(self) -> bool:
        """Replace in-memory state with the stored one. False if none usable."""
        if self.store is None:
            return False
        state = self.store.load()
        if state is None:
            return False
        self.conversations = state.conversations
        self.current_conversation_id = state.current_conversation_id
        self.current_branch = state.current_branch
        return True

    def clear(self) -> bool:
        """Forget every conversation and remove the stored slot."""
        self.conversations.clear()
        self.current_conversation_id = None
        self.current_branch = None
        if self.store is None:
            return True
        return self.store.clear()

    # Conversations

    def create_conversation(self, title: str = DEFAULT_CONVERSATION_TITLE) -> Conversation:
        clean_title = validate_title(title)
        conversation = Conversation(id=generate_conversation_id(), title=clean_title)
        conversation.branches[MAIN_BRANCH_ID] = tree.new_branch(
            MAIN_BRANCH_ID, MAIN_BRANCH_TITLE
        )
        tree.switch_to(conversation, MAIN_BRANCH_ID)

        self.conversations[conversation.id] = conversation
        self.current_conversation_id = conversation.id
        self.current_branch = MAIN_BRANCH_ID
        LOGGER.info("Created conversation %s (%r)", conversation.id, clean_title)
        self.save()
        return conversation

    def get_conversation(self, conversation_id: str | None) -> Conversation | None:
        if conversation_id is None:
            return None
        return self.conversations.get(conversation_id)

    def get_current(self) -> Conversation | None:
        return self.get_conversation(self.current_conversation_id)

    def get_current_branch(self) -> Branch | None:
        conversation = self.get_current()
        if conversation is None:
            return None
        return conversation.get_branch(self.current_branch)

    def select_conversation(self, conversation_id: str) -> bool:
        """Focus another conversation at its own current branch."""
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return False
        self.current_conversation_id = conversation.id
        self.current_branch = conversation.current_branch
        self.save()
        return True

    def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation. Deleting the current one clears the cursor."""
        if conversation_id not in self.conversations:
            LOGGER.debug("Cannot delete unknown conversation %s", conversation_id)
            return False
        del self.conversations[conversation_id]
        if self.current_conversation_id == conversation_id:
            self.current_conversation_id = None
            self.current_branch = None
        LOGGER.info("Deleted conversation %s", conversation_id)
        self.save()
        return True

    def rename_conversation(
        self, conversation_id: str, title: str, *, generated: bool = False
    ) -> Conversation:
        conversation = self.resolve(conversation_id)
        conversation.title = validate_title(title)
        if generated:
            conversation.title_generated = True
        self.save()
        return conversation

    def resolve(self, conversation_id: str | None = None) -> Conversation:
        target = conversation_id or self.current_conversation_id
        conversation = self.get_conversation(target)
        if conversation is None:
            raise ValidationError("No active conversation", "conversation_id")
        return conversation

    def _sync_cursor(self, conversation: Conversation) -> None:
        if self.current_conversation_id == conversation.id:
            self.current_branch = conversation.current_branch

    # Messages

    def append_message(
        self,
        content: str,
        sender: Sender | str = Sender.USER,
        branch_id: str | None = None,
        conversation_id: str | None = None,
    ) -> Message:
        """Append a message to ``branch_id`` (default: the focused branch).

        Raises:
            ValidationError: Empty or oversized content, unknown sender, or
                no such conversation/branch.
        """
        clean_content = validate_message(content)
        resolved_sender = _coerce_sender(sender)
        conversation = self.resolve(conversation_id)
        branch = conversation.get_branch(branch_id or conversation.current_branch)
        if branch is None:
            raise ValidationError("Branch not found", "branch_id")

        message = Message(
            id=generate_message_id(),
            content=clean_content,
            sender=resolved_sender,
            timestamp=_next_timestamp(conversation),
            branch_point=resolved_sender is Sender.ASSISTANT,
        )
        branch.messages.append(message)
        LOGGER.debug("Appended %s message %s to %s", resolved_sender.value, message.id, branch.id)
        self.save()
        return message

    def toggle_star(
        self,
        message_id: str,
        branch_id: str | None = None,
        conversation_id: str | None = None,
    ) -> bool:
        """Flip ``starred`` on a message and return the new value."""
        if not validate_id(message_id, IdKind.MESSAGE):
            raise ValidationError("Invalid message ID format", "message_id")
        conversation = self.resolve(conversation_id)
        branch = conversation.get_branch(branch_id or conversation.current_branch)
        if branch is None:
            raise ValidationError("Branch not found", "branch_id")
        index = branch.index_of(message_id)
        if index == -1:
            raise ValidationError("Message not found", "message_id")

        updated = branch.messages[index].with_starred(not branch.messages[index].starred)
        branch.messages[index] = updated
        self.save()
        return updated.starred

    def find_message(
        self, message_id: str, conversation_id: str | None = None
    ) -> MessageLocation | None:
        """Resolve a message id to the first branch (arena order) holding it."""
        conversation = self.get_conversation(conversation_id or self.current_conversation_id)
        if conversation is None:
            return None
        for branch in conversation.branches.values():
            message = branch.get_message(message_id)
            if message is not None:
                return MessageLocation(
                    message=message, branch_id=branch.id, branch_title=branch.title
                )
        return None

    def list_starred(self) -> list[StarredMessage]:
        """Starred messages of every conversation and branch, newest first."""
        starred = [
            StarredMessage(
                message=message,
                conversation_id=conversation.id,
                conversation_title=conversation.title,
                branch_id=branch.id,
                branch_title=branch.title,
            )
            for conversation in self.conversations.values()
            for branch in conversation.branches.values()
            for message in branch.messages
            if message.starred
        ]
        starred.sort(key=lambda item: item.message.timestamp, reverse=True)
        return starred

    def transcript(
        self, branch_id: str | None = None, conversation_id: str | None = None
    ) -> list[dict[str, str]]:
        """Role-tagged messages of a branch, ready for a completion request."""
        conversation = self.resolve(conversation_id)
        branch = conversation.get_branch(branch_id or conversation.current_branch)
        if branch is None:
            raise ValidationError("Branch not found", "branch_id")
        return [
            {"role": message.sender.value, "content": message.content}
            for message in branch.messages
        ]

    # Branches

    def fork_from_message(
        self, message_id: str, title: str, conversation_id: str | None = None
    ) -> Branch:
        """Fork from a message of the focused branch and focus the fork."""
        conversation = self.resolve(conversation_id)
        branch = tree.fork(conversation, conversation.current_branch, message_id, title)
        self._sync_cursor(conversation)
        self.save()
        return branch

    def switch_branch(self, branch_id: str, conversation_id: str | None = None) -> bool:
        """Focus a branch (and its conversation). False if it does not exist."""
        conversation = self.get_conversation(conversation_id or self.current_conversation_id)
        if conversation is None or not tree.switch_to(conversation, branch_id):
            return False
        self.current_conversation_id = conversation.id
        self.current_branch = branch_id
        self.save()
        return True

    def close_branch(self, branch_id: str, conversation_id: str | None = None) -> bool:
        conversation = self.get_conversation(conversation_id or self.current_conversation_id)
        if conversation is None or not tree.close(conversation, branch_id):
            return False
        self._sync_cursor(conversation)
        self.save()
        return True

    def delete_branch(self, branch_id: str, conversation_id: str | None = None) -> bool:
        conversation = self.get_conversation(conversation_id or self.current_conversation_id)
        if conversation is None or not tree.delete(conversation, branch_id):
            return False
        self._sync_cursor(conversation)
        self.save()
        return True

    def get_breadcrumbs(
        self, branch_id: str | None = None, conversation_id: str | None = None
    ) -> list[str]:
        conversation = self.get_conversation(conversation_id or self.current_conversation_id)
        if conversation is None:
            return []
        return tree.breadcrumbs(conversation, branch_id or conversation.current_branch)

    def list_active_branches(self, conversation_id: str | None = None) -> list[Branch]:
        conversation = self.get_conversation(conversation_id or self.current_conversation_id)
        if conversation is None:
            return []
        return tree.list_active(conversation)

    def get_tree(self, conversation_id: str | None = None) -> TreeNode | None:
        conversation = self.get_conversation(conversation_id or self.current_conversation_id)
        if conversation is None:
            return None
        return tree.project_tree(conversation)

    def jump_to_message(
        self, message_id: str, conversation_id: str | None = None
    ) -> MessageLocation | None:
        """Focus the branch holding ``message_id``; None if not found."""
        location = self.find_message(message_id, conversation_id)
        if location is None:
            return None
        self.switch_branch(location.branch_id, conversation_id)
        return location
