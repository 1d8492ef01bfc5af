"""Data models for messages, branches and conversations."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

MAIN_BRANCH_ID = "main"
MAIN_BRANCH_TITLE = "Main Channel"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def utcnow() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 with microsecond precision and a trailing Z."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace(
        "+00:00", "Z"
    )


def parse_timestamp(value: str | datetime | None) -> datetime:
    """Parse a stored timestamp; naive values are taken as UTC."""
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Message:
    """A single chat turn.

    Messages are immutable; starring produces a new instance via
    :meth:`with_starred`, so a message object can be shared by a branch and
    the forks copied from it without aliasing their star state.
    """

    id: str
    content: str
    sender: Sender
    timestamp: datetime
    branch_point: bool = False
    starred: bool = False

    def with_starred(self, starred: bool) -> Message:
        return replace(self, starred=starred)

    def to_dict(self) -> dict:
        """Serialize to the stored camelCase layout."""
        return {
            "id": self.id,
            "content": self.content,
            "sender": self.sender.value,
            "timestamp": format_timestamp(self.timestamp),
            "branchPoint": self.branch_point,
            "starred": self.starred,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        """Reconstruct from stored data; missing ``starred`` means False."""
        sender = Sender(data["sender"])
        return cls(
            id=data["id"],
            content=data["content"],
            sender=sender,
            timestamp=parse_timestamp(data.get("timestamp")),
            branch_point=data.get("branchPoint", sender is Sender.ASSISTANT),
            starred=bool(data.get("starred", False)),
        )


@dataclass
class Branch:
    """One node of a conversation tree.

    ``child_ids`` lists direct children in creation order; the child Branch
    objects themselves live in the owning Conversation's ``branches`` arena.
    """

    id: str
    title: str
    parent_branch_id: str | None = None
    parent_message_id: str | None = None
    messages: list[Message] = field(default_factory=list)
    child_ids: list[str] = field(default_factory=list)
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)

    def index_of(self, message_id: str) -> int:
        """Position of ``message_id`` in this branch, or -1."""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return -1

    def get_message(self, message_id: str) -> Message | None:
        index = self.index_of(message_id)
        return self.messages[index] if index >= 0 else None

    def to_dict(self) -> dict:
        """Serialize own fields; nested ``branches`` is filled by the store."""
        return {
            "id": self.id,
            "title": self.title,
            "parentBranchId": self.parent_branch_id,
            "parentMessageId": self.parent_message_id,
            "messages": [message.to_dict() for message in self.messages],
            "branches": [],
            "isActive": self.is_active,
            "createdAt": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Branch:
        return cls(
            id=data["id"],
            title=data.get("title") or data["id"],
            parent_branch_id=data.get("parentBranchId"),
            parent_message_id=data.get("parentMessageId"),
            messages=[Message.from_dict(item) for item in data.get("messages", [])],
            is_active=bool(data.get("isActive", True)),
            created_at=parse_timestamp(data.get("createdAt")),
        )


@dataclass
class OutlineItem:
    """One entry of a condensed conversation outline."""

    id: str
    title: str
    source_message_id: str
    timestamp: str | None = None
    children: list[OutlineItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "sourceMessageId": self.source_message_id,
            "timestamp": self.timestamp,
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: dict) -> OutlineItem:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            source_message_id=data.get("sourceMessageId", ""),
            timestamp=data.get("timestamp"),
            children=[cls.from_dict(child) for child in data.get("children") or []],
        )


@dataclass
class Conversation:
    """A conversation and its branch arena."""

    id: str
    title: str
    branches: dict[str, Branch] = field(default_factory=dict)
    current_branch: str = MAIN_BRANCH_ID
    breadcrumbs: list[str] = field(default_factory=list)
    title_generated: bool = False
    created_at: datetime = field(default_factory=utcnow)
    # Condensation cache
    condensed_items: list[OutlineItem] = field(default_factory=list)
    last_summarized_message_id: str | None = None
    condensed_last_updated: datetime | None = None
    condensed_parse_error: bool = False
    condensed_error_message: str | None = None

    @property
    def main(self) -> Branch:
        return self.branches[MAIN_BRANCH_ID]

    def get_branch(self, branch_id: str | None) -> Branch | None:
        if branch_id is None:
            return None
        return self.branches.get(branch_id)


@dataclass
class MessageLocation:
    """A message resolved to the branch that holds it."""

    message: Message
    branch_id: str
    branch_title: str


@dataclass
class StarredMessage:
    """A starred message annotated with where it lives."""

    message: Message
    conversation_id: str
    conversation_title: str
    branch_id: str
    branch_title: str
