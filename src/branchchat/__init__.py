"""Branching conversations with an LLM: fork any reply into its own thread."""

from branchchat.condense import CondensedLog, Condenser
from branchchat.config import ChatConfig
from branchchat.errors import ApiError, BranchChatError, RateLimitError, ValidationError
from branchchat.models import Branch, Conversation, Message, OutlineItem, Sender
from branchchat.registry import ConversationRegistry
from branchchat.session import ChatSession

__all__ = [
    "ApiError",
    "Branch",
    "BranchChatError",
    "ChatConfig",
    "ChatSession",
    "CondensedLog",
    "Condenser",
    "Conversation",
    "ConversationRegistry",
    "Message",
    "OutlineItem",
    "RateLimitError",
    "Sender",
    "ValidationError",
]
