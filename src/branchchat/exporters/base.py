"""Base exporter interface for conversation export."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from branchchat import tree
from branchchat.models import MAIN_BRANCH_ID, format_timestamp

if TYPE_CHECKING:
    from branchchat.models import Branch, Conversation, Message


class Exporter(ABC):
    """Base class for conversation exporters."""

    @property
    @abstractmethod
    def extension(self) -> str:
        """File extension without dot (e.g., 'json', 'yaml')."""
        ...

    @abstractmethod
    def export(self, conversations: Iterable[Conversation], output_path: Path) -> int:
        """Export conversations to file.

        Args:
            conversations: Conversations to export.
            output_path: Path to output file.

        Returns:
            Number of conversations exported.
        """
        ...

    def build_document(self, conversations: Iterable[Conversation]) -> dict:
        data = [self.conversation_to_dict(c) for c in conversations]
        return {
            "conversations": data,
            "count": len(data),
        }

    @staticmethod
    def message_to_dict(message: Message) -> dict:
        return {
            "id": message.id,
            "sender": message.sender.value,
            "content": message.content,
            "timestamp": format_timestamp(message.timestamp),
            "branch_point": message.branch_point,
            "starred": message.starred,
        }

    @classmethod
    def branch_to_dict(cls, conversation: Conversation, branch: Branch) -> dict:
        """Convert a branch and its descendants to a nested dictionary."""
        return {
            "id": branch.id,
            "title": branch.title,
            "parent_message_id": branch.parent_message_id,
            "is_active": branch.is_active,
            "created_at": format_timestamp(branch.created_at),
            "messages": [cls.message_to_dict(m) for m in branch.messages],
            "branches": [
                cls.branch_to_dict(conversation, child)
                for child in tree.children(conversation, branch.id).values()
            ],
        }

    @classmethod
    def conversation_to_dict(cls, conversation: Conversation) -> dict:
        """Convert a conversation to an exportable dictionary.

        Args:
            conversation: The conversation to convert.

        Returns:
            Dictionary with the conversation fields and its branch tree
            rooted at the main branch.
        """
        return {
            "id": conversation.id,
            "title": conversation.title,
            "created_at": format_timestamp(conversation.created_at),
            "current_branch": conversation.current_branch,
            "branch_count": len(conversation.branches),
            "tree": cls.branch_to_dict(conversation, conversation.branches[MAIN_BRANCH_ID]),
        }
