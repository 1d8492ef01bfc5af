"""Serialize the conversation registry to and from a durable slot."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from branchchat import tree
from branchchat.models import (
    MAIN_BRANCH_ID,
    Branch,
    Conversation,
    OutlineItem,
    format_timestamp,
    parse_timestamp,
    utcnow,
)
from branchchat.storage.base import MEMORY_PATH
from branchchat.storage.exceptions import CorruptStateError, StorageError
from branchchat.storage.slot import KeyValueSlot

LOGGER = logging.getLogger(__name__)

STORAGE_KEY = "claudeBranchingData"
SCHEMA_VERSION = "1.0"


@dataclass
class RegistryState:
    """Everything needed to restore a registry."""

    conversations: dict[str, Conversation]
    current_conversation_id: str | None
    current_branch: str | None


def _branch_to_dict(
    conversation: Conversation, branch: Branch, visiting: set[str]
) -> dict:
    data = branch.to_dict()
    visiting.add(branch.id)
    data["branches"] = [
        [child_id, _branch_to_dict(conversation, child, visiting)]
        for child_id, child in tree.children(conversation, branch.id).items()
        if child_id not in visiting
    ]
    visiting.discard(branch.id)
    return data


def conversation_to_dict(conversation: Conversation) -> dict:
    """Serialize a conversation, branches as flat and nested ``[id, value]`` pairs."""
    return {
        "id": conversation.id,
        "title": conversation.title,
        "createdAt": format_timestamp(conversation.created_at),
        "branches": [
            [branch_id, _branch_to_dict(conversation, branch, set())]
            for branch_id, branch in conversation.branches.items()
        ],
        "currentBranch": conversation.current_branch,
        "breadcrumbs": list(conversation.breadcrumbs),
        "titleGenerated": conversation.title_generated,
        "condensedItems": [item.to_dict() for item in conversation.condensed_items],
        "lastSummarizedMessageId": conversation.last_summarized_message_id,
        "condensedLastUpdated": (
            format_timestamp(conversation.condensed_last_updated)
            if conversation.condensed_last_updated
            else None
        ),
        "condensedParseError": conversation.condensed_parse_error,
        "condensedErrorMessage": conversation.condensed_error_message,
    }


def _pairs(value: object) -> list[tuple[str, dict]]:
    """Accept ``[[id, obj], ...]`` or a plain mapping."""
    if value is None:
        return []
    if isinstance(value, dict):
        items = list(value.items())
    elif isinstance(value, list):
        items = [tuple(pair) for pair in value]
    else:
        raise TypeError(f"expected list of pairs, got {type(value).__name__}")
    pairs = []
    for key, item in items:
        if not isinstance(key, str):
            raise TypeError(f"pair key must be a string, got {type(key).__name__}")
        pairs.append((key, item))
    return pairs


def _collect_branches(pairs: list[tuple[str, dict]], arena: dict[str, Branch]) -> None:
    for branch_id, data in pairs:
        if branch_id not in arena:
            arena[branch_id] = Branch.from_dict({**data, "id": branch_id})
        _collect_branches(_pairs(data.get("branches")), arena)


def conversation_from_dict(data: dict) -> Conversation:
    """Rebuild a conversation, defaulting fields older layouts lack."""
    arena: dict[str, Branch] = {}
    _collect_branches(_pairs(data.get("branches")), arena)
    if MAIN_BRANCH_ID not in arena:
        raise ValueError(f"conversation {data.get('id')} has no main branch")

    updated = data.get("condensedLastUpdated")
    current_branch = data.get("currentBranch")
    conversation = Conversation(
        id=data["id"],
        title=data.get("title") or "New Conversation",
        branches=arena,
        current_branch=current_branch if isinstance(current_branch, str) else MAIN_BRANCH_ID,
        title_generated=bool(data.get("titleGenerated", False)),
        created_at=parse_timestamp(data.get("createdAt")),
        condensed_items=[
            OutlineItem.from_dict(item) for item in data.get("condensedItems") or []
        ],
        last_summarized_message_id=data.get("lastSummarizedMessageId"),
        condensed_last_updated=parse_timestamp(updated) if updated else None,
        condensed_parse_error=bool(data.get("condensedParseError", False)),
        condensed_error_message=data.get("condensedErrorMessage"),
    )
    tree.rebuild_links(conversation)
    if conversation.current_branch not in arena:
        conversation.current_branch = MAIN_BRANCH_ID
    conversation.breadcrumbs = tree.breadcrumbs(conversation, conversation.current_branch)
    return conversation


def dump_state(state: RegistryState) -> str:
    payload = {
        "conversations": [
            [conversation_id, conversation_to_dict(conversation)]
            for conversation_id, conversation in state.conversations.items()
        ],
        "currentConversationId": state.current_conversation_id,
        "currentBranch": state.current_branch,
        "version": SCHEMA_VERSION,
        "timestamp": format_timestamp(utcnow()),
    }
    return json.dumps(payload, ensure_ascii=False)


def parse_state(raw: str, key: str = STORAGE_KEY) -> RegistryState:
    """Parse and validate a stored payload.

    Raises:
        CorruptStateError: The payload is not JSON, misses required fields,
            or its current conversation is not among those stored.
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptStateError(key, f"invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise CorruptStateError(key, "payload is not an object")
    if not payload.get("conversations") or not payload.get("currentConversationId"):
        raise CorruptStateError(key, "missing conversations or currentConversationId")

    version = payload.get("version")
    if version != SCHEMA_VERSION:
        LOGGER.warning("Loading state with version %r (expected %s)", version, SCHEMA_VERSION)

    conversations: dict[str, Conversation] = {}
    try:
        pairs = _pairs(payload["conversations"])
    except (TypeError, ValueError) as e:
        raise CorruptStateError(key, f"bad conversations field: {e}") from e
    for conversation_id, data in pairs:
        try:
            conversation = conversation_from_dict({**data, "id": conversation_id})
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            LOGGER.warning("Skipping unreadable conversation %s: %s", conversation_id, e)
            continue
        conversations[conversation_id] = conversation

    current_id = payload["currentConversationId"]
    if not isinstance(current_id, str):
        raise CorruptStateError(key, "currentConversationId is not a string")
    current = conversations.get(current_id)
    if current is None:
        raise CorruptStateError(key, f"current conversation {current_id} not found")

    current_branch = payload.get("currentBranch") or MAIN_BRANCH_ID
    if not isinstance(current_branch, str):
        raise CorruptStateError(key, "currentBranch is not a string")
    if not tree.switch_to(current, current_branch):
        current_branch = current.current_branch
    return RegistryState(
        conversations=conversations,
        current_conversation_id=current_id,
        current_branch=current_branch,
    )


class RegistryStore:
    """Best-effort persistence for the registry in a single slot key.

    Failures are logged and reported as ``False``/``None``; they never raise,
    so in-memory state stays authoritative when the disk misbehaves.
    """

    def __init__(self, slot: KeyValueSlot, key: str = STORAGE_KEY) -> None:
        self.slot = slot
        self.key = key

    @classmethod
    def open(cls, db_path: Path | str, key: str = STORAGE_KEY) -> RegistryStore:
        """Open the slot at ``db_path``, or an in-memory one if that fails."""
        try:
            slot = KeyValueSlot(db_path)
        except StorageError as e:
            LOGGER.error("Cannot open '%s', keeping state in memory only: %s", db_path, e)
            slot = KeyValueSlot(MEMORY_PATH)
        return cls(slot, key=key)

    def close(self) -> None:
        self.slot.close()

    def save(self, state: RegistryState) -> bool:
        try:
            self.slot.set(self.key, dump_state(state))
        except (StorageError, TypeError, ValueError) as e:
            LOGGER.error("Saving registry to '%s' failed: %s", self.key, e)
            return False
        return True

    def load(self) -> RegistryState | None:
        """Return the stored state, or None if absent or unusable."""
        try:
            raw = self.slot.get(self.key)
            if raw is None:
                return None
            state = parse_state(raw, self.key)
        except StorageError as e:
            LOGGER.warning("Ignoring stored registry: %s", e)
            return None
        LOGGER.info(
            "Loaded %d conversations from '%s'", len(state.conversations), self.key
        )
        return state

    def clear(self) -> bool:
        try:
            self.slot.delete(self.key)
        except StorageError as e:
            LOGGER.error("Clearing '%s' failed: %s", self.key, e)
            return False
        return True
