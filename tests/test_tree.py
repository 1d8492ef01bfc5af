"""Tests for branch tree operations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from branchchat import tree
from branchchat.errors import ValidationError
from branchchat.ids import generate_message_id
from branchchat.models import MAIN_BRANCH_ID, Conversation, Message, Sender

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _message(index: int, sender: Sender = Sender.USER) -> Message:
    return Message(
        id=generate_message_id(),
        content=f"message {index}",
        sender=sender,
        timestamp=BASE_TIME + timedelta(seconds=index),
        branch_point=sender is Sender.ASSISTANT,
    )


@pytest.fixture
def conversation() -> Conversation:
    """Conversation whose main branch holds four alternating messages."""
    conv = Conversation(id="conv_1700000000000_abcdefghi", title="Tree Test")
    main = tree.new_branch(MAIN_BRANCH_ID, "Main Channel")
    main.messages = [
        _message(i, Sender.USER if i % 2 == 0 else Sender.ASSISTANT) for i in range(4)
    ]
    conv.branches[MAIN_BRANCH_ID] = main
    tree.switch_to(conv, MAIN_BRANCH_ID)
    return conv


class TestFork:
    """fork tests."""

    def test_prefix_law(self, conversation: Conversation):
        main = conversation.main
        source = main.messages[1]

        branch = tree.fork(conversation, MAIN_BRANCH_ID, source.id, "Deep Dive")

        assert branch.messages == main.messages[:2]
        assert branch.messages[-1].id == source.id
        assert branch.parent_branch_id == MAIN_BRANCH_ID
        assert branch.parent_message_id == source.id

    def test_fork_focuses_and_links(self, conversation: Conversation):
        branch = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[3].id, "B")

        assert conversation.current_branch == branch.id
        assert conversation.main.child_ids == [branch.id]
        assert conversation.breadcrumbs == ["Main Channel", "B"]
        assert branch.is_active

    def test_fork_isolation(self, conversation: Conversation):
        main = conversation.main
        before = list(main.messages)
        branch = tree.fork(conversation, MAIN_BRANCH_ID, main.messages[1].id, "B")

        branch.messages.append(_message(10))

        assert main.messages == before
        assert len(branch.messages) == 3

    def test_two_forks_from_same_message_are_siblings(self, conversation: Conversation):
        source_id = conversation.main.messages[1].id
        first = tree.fork(conversation, MAIN_BRANCH_ID, source_id, "First")
        second = tree.fork(conversation, MAIN_BRANCH_ID, source_id, "Second")

        assert first.id != second.id
        assert conversation.main.child_ids == [first.id, second.id]

    def test_nested_fork(self, conversation: Conversation):
        child = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "Child")
        grandchild = tree.fork(conversation, child.id, child.messages[0].id, "Grandchild")

        assert grandchild.parent_branch_id == child.id
        assert len(grandchild.messages) == 1
        assert tree.breadcrumbs(conversation, grandchild.id) == [
            "Main Channel",
            "Child",
            "Grandchild",
        ]
        assert tree.depth(conversation, grandchild.id) == 2

    def test_invalid_message_id_shape(self, conversation: Conversation):
        with pytest.raises(ValidationError, match="Invalid message ID format"):
            tree.fork(conversation, MAIN_BRANCH_ID, "not-an-id", "B")

    def test_message_not_in_branch(self, conversation: Conversation):
        branches_before = dict(conversation.branches)
        with pytest.raises(ValidationError, match="Message not found in current branch"):
            tree.fork(conversation, MAIN_BRANCH_ID, generate_message_id(), "B")
        assert conversation.branches == branches_before

    def test_unknown_current_branch(self, conversation: Conversation):
        with pytest.raises(ValidationError, match="Current branch not found"):
            tree.fork(
                conversation,
                "branch_1700000000000_zzzzzzzzz",
                conversation.main.messages[0].id,
                "B",
            )

    def test_bad_title(self, conversation: Conversation):
        with pytest.raises(ValidationError):
            tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[0].id, "x" * 51)
        assert conversation.main.child_ids == []


class TestNavigation:
    """switch_to, breadcrumbs and close tests."""

    def test_switch_to_unknown(self, conversation: Conversation):
        assert not tree.switch_to(conversation, "nope")
        assert conversation.current_branch == MAIN_BRANCH_ID

    def test_breadcrumbs_unknown_branch(self, conversation: Conversation):
        assert tree.breadcrumbs(conversation, "nope") == []

    def test_breadcrumbs_main(self, conversation: Conversation):
        assert tree.breadcrumbs(conversation, MAIN_BRANCH_ID) == ["Main Channel"]

    def test_close_main_refused(self, conversation: Conversation):
        assert not tree.close(conversation, MAIN_BRANCH_ID)
        assert conversation.main.is_active

    def test_close_focused_branch_returns_to_parent(self, conversation: Conversation):
        child = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "C")
        grandchild = tree.fork(conversation, child.id, child.messages[1].id, "G")

        assert tree.close(conversation, grandchild.id)

        assert not grandchild.is_active
        assert grandchild.id in conversation.branches
        assert conversation.current_branch == child.id

    def test_close_unfocused_keeps_focus(self, conversation: Conversation):
        child = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "C")
        tree.switch_to(conversation, MAIN_BRANCH_ID)

        assert tree.close(conversation, child.id)
        assert conversation.current_branch == MAIN_BRANCH_ID

    def test_closed_branch_hidden_from_projection(self, conversation: Conversation):
        child = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "C")
        tree.close(conversation, child.id)

        node = tree.project_tree(conversation)
        assert node.children == []
        assert [b.id for b in tree.list_active(conversation)] == [MAIN_BRANCH_ID]

    def test_projection_marks_focus(self, conversation: Conversation):
        child = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "C")

        node = tree.project_tree(conversation)

        assert node.id == MAIN_BRANCH_ID
        assert not node.is_active
        assert node.children[0].id == child.id
        assert node.children[0].is_active
        assert node.to_dict()["children"][0]["title"] == "C"


class TestDelete:
    """delete tests."""

    def test_delete_main_refused(self, conversation: Conversation):
        assert not tree.delete(conversation, MAIN_BRANCH_ID)
        assert MAIN_BRANCH_ID in conversation.branches

    def test_delete_unknown(self, conversation: Conversation):
        assert not tree.delete(conversation, "branch_1700000000000_zzzzzzzzz")

    def test_delete_removes_descendants(self, conversation: Conversation):
        child = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "C")
        grandchild = tree.fork(conversation, child.id, child.messages[0].id, "G")
        tree.switch_to(conversation, MAIN_BRANCH_ID)
        sibling = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[3].id, "S")

        assert tree.delete(conversation, child.id)

        assert child.id not in conversation.branches
        assert grandchild.id not in conversation.branches
        assert conversation.main.child_ids == [sibling.id]
        assert conversation.current_branch == sibling.id

    def test_delete_focused_returns_to_main(self, conversation: Conversation):
        child = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "C")
        grandchild = tree.fork(conversation, child.id, child.messages[0].id, "G")

        tree.delete(conversation, child.id)

        assert grandchild.id not in conversation.branches
        assert conversation.current_branch == MAIN_BRANCH_ID
        assert conversation.breadcrumbs == ["Main Channel"]

    def test_subtree_ids_depth_first(self, conversation: Conversation):
        a = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "A")
        a1 = tree.fork(conversation, a.id, a.messages[0].id, "A1")
        tree.switch_to(conversation, MAIN_BRANCH_ID)
        b = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[2].id, "B")

        assert tree.subtree_ids(conversation, MAIN_BRANCH_ID) == [MAIN_BRANCH_ID, a.id, a1.id, b.id]


class TestRebuildLinks:
    def test_rebuilds_from_parent_pointers(self, conversation: Conversation):
        a = tree.fork(conversation, MAIN_BRANCH_ID, conversation.main.messages[1].id, "A")
        b = tree.fork(conversation, a.id, a.messages[0].id, "B")
        for branch in conversation.branches.values():
            branch.child_ids = []

        tree.rebuild_links(conversation)

        assert conversation.main.child_ids == [a.id]
        assert a.child_ids == [b.id]
        assert tree.children(conversation, a.id) == {b.id: b}
