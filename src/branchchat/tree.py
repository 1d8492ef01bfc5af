"""Structural operations on a conversation's branch tree.

Every function here works on a single :class:`Conversation`. The flat
``Conversation.branches`` dict is the only place Branch objects live; the
nested parent/child view is derived from ``Branch.child_ids``. Functions
validate everything they need before the first mutation, so a failed call
leaves the tree untouched. Persistence is the caller's concern.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from branchchat.errors import ValidationError
from branchchat.ids import IdKind, generate_branch_id, validate_id
from branchchat.models import MAIN_BRANCH_ID, Branch, Conversation
from branchchat.validation import validate_title

LOGGER = logging.getLogger(__name__)


@dataclass
class TreeNode:
    """Display projection of an active branch and its active descendants."""

    id: str
    title: str
    is_active: bool  # True for the focused branch
    children: list[TreeNode] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "isActive": self.is_active,
            "children": [child.to_dict() for child in self.children],
        }


def new_branch(
    branch_id: str,
    title: str,
    parent_branch_id: str | None = None,
    parent_message_id: str | None = None,
) -> Branch:
    """Construct an empty branch. Used for main and by :func:`fork`."""
    return Branch(
        id=branch_id,
        title=validate_title(title),
        parent_branch_id=parent_branch_id,
        parent_message_id=parent_message_id,
    )


def fork(
    conversation: Conversation,
    current_branch_id: str,
    source_message_id: str,
    title: str,
) -> Branch:
    """Fork a new branch from ``source_message_id`` in ``current_branch_id``.

    The new branch receives the parent's messages up to and including the
    source message, becomes the focused branch, and is linked under its
    parent.

    Raises:
        ValidationError: Bad id shape, bad title, unknown branch, or the
            message is not in the current branch.
    """
    if not validate_id(source_message_id, IdKind.MESSAGE):
        raise ValidationError("Invalid message ID format", "message_id")
    clean_title = validate_title(title)

    parent = conversation.get_branch(current_branch_id)
    if parent is None:
        raise ValidationError("Current branch not found", "branch_id")

    index = parent.index_of(source_message_id)
    if index == -1:
        raise ValidationError("Message not found in current branch", "message_id")

    branch_id = generate_branch_id()
    while branch_id in conversation.branches:
        branch_id = generate_branch_id()

    branch = new_branch(branch_id, clean_title, parent.id, source_message_id)
    branch.messages = list(parent.messages[: index + 1])

    conversation.branches[branch_id] = branch
    parent.child_ids.append(branch_id)
    switch_to(conversation, branch_id)

    LOGGER.info(
        "Forked branch %s (%r) from %s at message %s",
        branch_id,
        clean_title,
        parent.id,
        source_message_id,
    )
    return branch


def breadcrumbs(conversation: Conversation, branch_id: str) -> list[str]:
    """Titles from the root down to ``branch_id``; [] if unknown."""
    branch = conversation.get_branch(branch_id)
    if branch is None:
        return []

    trail = [branch.title]
    seen = {branch.id}
    current = branch
    while current.parent_branch_id:
        parent = conversation.get_branch(current.parent_branch_id)
        if parent is None or parent.id in seen:
            break
        trail.insert(0, parent.title)
        seen.add(parent.id)
        current = parent
    return trail


def depth(conversation: Conversation, branch_id: str) -> int:
    """Number of parent links between ``branch_id`` and the root."""
    return max(0, len(breadcrumbs(conversation, branch_id)) - 1)


def switch_to(conversation: Conversation, branch_id: str) -> bool:
    """Focus ``branch_id``. Returns False if the branch does not exist."""
    if branch_id not in conversation.branches:
        LOGGER.debug("Cannot switch to unknown branch %s", branch_id)
        return False
    conversation.current_branch = branch_id
    conversation.breadcrumbs = breadcrumbs(conversation, branch_id)
    return True


def close(conversation: Conversation, branch_id: str) -> bool:
    """Hide a branch from navigation. Main cannot be closed."""
    if branch_id == MAIN_BRANCH_ID:
        return False
    branch = conversation.get_branch(branch_id)
    if branch is None:
        return False

    branch.is_active = False
    if conversation.current_branch == branch_id:
        switch_to(conversation, branch.parent_branch_id or MAIN_BRANCH_ID)
    LOGGER.info("Closed branch %s", branch_id)
    return True


def subtree_ids(conversation: Conversation, branch_id: str) -> list[str]:
    """``branch_id`` followed by all of its descendants, depth first."""
    result: list[str] = []
    stack = [branch_id]
    while stack:
        current_id = stack.pop()
        branch = conversation.get_branch(current_id)
        if branch is None or current_id in result:
            continue
        result.append(current_id)
        stack.extend(reversed(branch.child_ids))
    return result


def delete(conversation: Conversation, branch_id: str) -> bool:
    """Remove a branch and its descendants. Main cannot be deleted."""
    if branch_id == MAIN_BRANCH_ID:
        return False
    branch = conversation.get_branch(branch_id)
    if branch is None:
        return False

    removed = subtree_ids(conversation, branch_id)
    parent = conversation.get_branch(branch.parent_branch_id)
    if parent is not None and branch_id in parent.child_ids:
        parent.child_ids.remove(branch_id)
    for removed_id in removed:
        del conversation.branches[removed_id]

    if conversation.current_branch in removed:
        switch_to(conversation, MAIN_BRANCH_ID)

    LOGGER.info("Deleted branch %s (%d branches removed)", branch_id, len(removed))
    return True


def children(conversation: Conversation, branch_id: str) -> dict[str, Branch]:
    """Direct children of ``branch_id`` keyed by id, in creation order."""
    branch = conversation.get_branch(branch_id)
    if branch is None:
        return {}
    return {
        child_id: conversation.branches[child_id]
        for child_id in branch.child_ids
        if child_id in conversation.branches
    }


def list_active(conversation: Conversation) -> list[Branch]:
    return [branch for branch in conversation.branches.values() if branch.is_active]


def project_tree(conversation: Conversation) -> TreeNode | None:
    """Build the navigation tree from main, skipping closed subtrees."""

    def build(branch_id: str) -> TreeNode | None:
        branch = conversation.get_branch(branch_id)
        if branch is None or not branch.is_active:
            return None
        nodes = (build(child_id) for child_id in branch.child_ids)
        return TreeNode(
            id=branch.id,
            title=branch.title,
            is_active=conversation.current_branch == branch.id,
            children=[node for node in nodes if node is not None],
        )

    return build(MAIN_BRANCH_ID)


def rebuild_links(conversation: Conversation) -> None:
    """Recompute every ``child_ids`` list from ``parent_branch_id`` links.

    Children keep arena order. Branches whose parent is missing are left
    unlinked.
    """
    for branch in conversation.branches.values():
        branch.child_ids = []
    for branch in conversation.branches.values():
        parent = conversation.get_branch(branch.parent_branch_id)
        if parent is not None and parent.id != branch.id:
            parent.child_ids.append(branch.id)
