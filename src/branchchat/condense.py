"""Cached, clickable outlines of a whole conversation."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Protocol

from branchchat.models import Conversation, Message, OutlineItem, format_timestamp, utcnow

if TYPE_CHECKING:
    from branchchat.registry import ConversationRegistry

LOGGER = logging.getLogger(__name__)

FALLBACK_TITLE = "Conversation Summary"
UNTITLED_TOPIC = "Untitled Topic"
PARSE_ERROR_MESSAGE = "AI response parsing failed - using fallback summary"

_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


class OutlineSource(Protocol):
    def condense_outline(self, transcript: str) -> str: ...


@dataclass
class TimelineMessage:
    """A message with the branch it was found in."""

    message: Message
    branch_id: str
    branch_title: str


@dataclass
class CondensedLog:
    """Outline returned to callers; ``regenerated`` is False on a cache hit."""

    items: list[OutlineItem] = field(default_factory=list)
    parse_error: bool = False
    error_message: str | None = None
    regenerated: bool = False


def collect_messages(conversation: Conversation) -> list[TimelineMessage]:
    """Every distinct message of the conversation, oldest first.

    Fork prefixes share message ids with their parent, so each id is kept
    once, attributed to the first branch (arena order) that holds it.
    """
    seen: set[str] = set()
    timeline: list[TimelineMessage] = []
    for branch in conversation.branches.values():
        for message in branch.messages:
            if message.id in seen:
                continue
            seen.add(message.id)
            timeline.append(TimelineMessage(message, branch.id, branch.title))
    timeline.sort(key=lambda entry: entry.message.timestamp)
    return timeline


def format_transcript(timeline: list[TimelineMessage]) -> str:
    return "\n\n".join(
        f"[{entry.message.sender.value.upper()} {entry.message.id}]\n{entry.message.content}"
        for entry in timeline
    )


def stable_id(title: str, source_message_id: str) -> str:
    """Deterministic 12-hex-char id for an outline item."""
    digest = hashlib.md5(
        f"{title}_{source_message_id}".encode("utf-8"), usedforsecurity=False
    ).hexdigest()
    return digest[:12]


def needs_refresh(
    conversation: Conversation, timeline: list[TimelineMessage], force: bool = False
) -> bool:
    """True unless the cached outline already covers the newest message."""
    cursor = conversation.last_summarized_message_id
    if force or cursor is None:
        return True
    ids = [entry.message.id for entry in timeline]
    if cursor not in ids:
        return True
    return ids.index(cursor) != len(ids) - 1


def _normalize(
    raw: dict,
    index: int,
    first_id: str,
    timestamps: dict[str, str],
    depth: int = 0,
) -> OutlineItem:
    title = raw.get("title") or UNTITLED_TOPIC
    source = raw.get("sourceMessageId") or first_id
    item_id = raw.get("id") or stable_id(
        raw.get("title") or f"{'child' if depth else 'item'}_{index}", source
    )
    children: list[OutlineItem] = []
    if depth == 0:
        children = [
            _normalize(child, child_index, first_id, timestamps, depth=1)
            for child_index, child in enumerate(raw.get("children") or [])
            if isinstance(child, dict)
        ]
    return OutlineItem(
        id=str(item_id),
        title=str(title),
        source_message_id=str(source),
        timestamp=timestamps.get(source),
        children=children,
    )


def fallback_outline(timeline: list[TimelineMessage]) -> list[OutlineItem]:
    first = timeline[0].message
    return [
        OutlineItem(
            id=stable_id(FALLBACK_TITLE, first.id),
            title=FALLBACK_TITLE,
            source_message_id=first.id,
            timestamp=format_timestamp(first.timestamp),
        )
    ]


def parse_outline(text: str, timeline: list[TimelineMessage]) -> list[OutlineItem]:
    """Parse a model response into normalized outline items.

    Prose around the JSON is tolerated: the first bracketed span is parsed.
    Nesting beyond one level is dropped.

    Raises:
        ValueError: No JSON array could be parsed from ``text``.
    """
    match = _JSON_ARRAY.search(text)
    payload = match.group(0) if match else text
    data = json.loads(payload)
    if not isinstance(data, list):
        raise ValueError("Response is not an array")

    first_id = timeline[0].message.id
    timestamps = {
        entry.message.id: format_timestamp(entry.message.timestamp) for entry in timeline
    }
    return [
        _normalize(item, index, first_id, timestamps)
        for index, item in enumerate(data)
        if isinstance(item, dict)
    ]


def search_outline(items: list[OutlineItem], query: str) -> list[OutlineItem]:
    """Filter an outline by title.

    A matching parent keeps all its children; a parent that only matches
    through children keeps just the matching ones.
    """
    needle = query.strip().lower()
    if not needle:
        return list(items)

    results: list[OutlineItem] = []
    for item in items:
        matching_children = [c for c in item.children if needle in c.title.lower()]
        if needle in item.title.lower():
            results.append(item)
        elif matching_children:
            results.append(replace(item, children=matching_children))
    return results


class Condenser:
    """Builds and caches condensed outlines on Conversation objects."""

    def __init__(self, registry: ConversationRegistry, source: OutlineSource) -> None:
        self.registry = registry
        self.source = source

    def get_condensed_log(
        self, conversation_id: str | None = None, force_refresh: bool = False
    ) -> CondensedLog:
        """Return the outline, regenerating only when it is stale.

        Raises:
            ValidationError: No such conversation.
        """
        conversation = self.registry.resolve(conversation_id)
        timeline = collect_messages(conversation)
        if not timeline:
            return CondensedLog()

        if not needs_refresh(conversation, timeline, force_refresh):
            LOGGER.debug("Condensed log cache hit for %s", conversation.id)
            return CondensedLog(
                items=conversation.condensed_items,
                parse_error=conversation.condensed_parse_error,
                error_message=conversation.condensed_error_message,
            )

        LOGGER.info(
            "Condensing %d messages of conversation %s", len(timeline), conversation.id
        )
        parse_error = False
        error_message: str | None = None
        try:
            response = self.source.condense_outline(format_transcript(timeline))
            items = parse_outline(response, timeline)
        except ValueError as exc:
            LOGGER.warning("Failed to parse condensed outline: %s", exc)
            items = fallback_outline(timeline)
            parse_error = True
            error_message = PARSE_ERROR_MESSAGE
        except Exception as exc:
            LOGGER.warning("Outline generation failed: %s", exc)
            items = fallback_outline(timeline)
            parse_error = True
            error_message = f"Failed to generate condensed outline: {exc}"

        conversation.condensed_items = items
        conversation.last_summarized_message_id = timeline[-1].message.id
        conversation.condensed_last_updated = utcnow()
        conversation.condensed_parse_error = parse_error
        conversation.condensed_error_message = error_message
        self.registry.save()

        return CondensedLog(
            items=items,
            parse_error=parse_error,
            error_message=error_message,
            regenerated=True,
        )
