"""Tests for condensed conversation outlines."""

from __future__ import annotations

import hashlib
import json
from unittest.mock import Mock

import pytest

from branchchat.condense import (
    FALLBACK_TITLE,
    PARSE_ERROR_MESSAGE,
    UNTITLED_TOPIC,
    Condenser,
    collect_messages,
    format_transcript,
    parse_outline,
    search_outline,
    stable_id,
)
from branchchat.errors import ApiError, ValidationError
from branchchat.models import MAIN_BRANCH_ID, OutlineItem, Sender
from branchchat.registry import ConversationRegistry


@pytest.fixture
def source() -> Mock:
    source = Mock()
    source.condense_outline.return_value = "[]"
    return source


@pytest.fixture
def chatted(registry: ConversationRegistry):
    """Registry with one exchange on main; returns (registry, user, assistant)."""
    user = registry.append_message("What is machine learning?", Sender.USER)
    assistant = registry.append_message("Machine learning is ...", Sender.ASSISTANT)
    return registry, user, assistant


def _outline(source_id: str, **extra) -> str:
    item = {"title": "Machine learning basics", "sourceMessageId": source_id}
    item.update(extra)
    return json.dumps([item])


class TestTimeline:
    """collect_messages and format_transcript tests."""

    def test_shared_prefix_counted_once(self, chatted):
        registry, user, assistant = chatted
        registry.fork_from_message(assistant.id, "Tangent")
        extra = registry.append_message("Tell me more")

        timeline = collect_messages(registry.get_current())

        assert [entry.message.id for entry in timeline] == [user.id, assistant.id, extra.id]
        assert timeline[0].branch_id == MAIN_BRANCH_ID
        assert timeline[2].branch_title == "Tangent"

    def test_sorted_by_timestamp_across_branches(self, chatted):
        registry, _, assistant = chatted
        registry.fork_from_message(assistant.id, "Tangent")
        in_branch = registry.append_message("Branch question")
        registry.switch_branch(MAIN_BRANCH_ID)
        on_main = registry.append_message("Main question")

        ids = [entry.message.id for entry in collect_messages(registry.get_current())]

        assert ids[-2:] == [in_branch.id, on_main.id]

    def test_transcript_format(self, chatted):
        registry, user, assistant = chatted

        text = format_transcript(collect_messages(registry.get_current()))

        assert text == (
            f"[USER {user.id}]\nWhat is machine learning?\n\n"
            f"[ASSISTANT {assistant.id}]\nMachine learning is ..."
        )


class TestParseOutline:
    """parse_outline normalization tests."""

    def test_prose_around_json(self, chatted):
        registry, user, _ = chatted
        timeline = collect_messages(registry.get_current())
        text = f"Here is the outline:\n{_outline(user.id)}\nHope this helps!"

        items = parse_outline(text, timeline)

        assert len(items) == 1
        assert items[0].title == "Machine learning basics"
        assert items[0].source_message_id == user.id

    def test_stable_id_when_missing(self, chatted):
        registry, user, _ = chatted
        timeline = collect_messages(registry.get_current())

        items = parse_outline(_outline(user.id), timeline)

        expected = hashlib.md5(f"Machine learning basics_{user.id}".encode()).hexdigest()[:12]
        assert items[0].id == expected
        assert stable_id("Machine learning basics", user.id) == expected

    def test_given_id_kept(self, chatted):
        registry, user, _ = chatted
        items = parse_outline(_outline(user.id, id="custom"), collect_messages(registry.get_current()))
        assert items[0].id == "custom"

    def test_defaults(self, chatted):
        registry, user, _ = chatted
        timeline = collect_messages(registry.get_current())

        items = parse_outline("[{}]", timeline)

        assert items[0].title == UNTITLED_TOPIC
        assert items[0].source_message_id == user.id
        assert items[0].timestamp == "2024-01-01T12:00:01.000000Z"

    def test_unknown_source_has_no_timestamp(self, chatted):
        registry, _, _ = chatted
        items = parse_outline(
            _outline("msg_1_zzzzzzzzz"), collect_messages(registry.get_current())
        )
        assert items[0].timestamp is None

    def test_depth_truncated_to_one_level(self, chatted):
        registry, user, assistant = chatted
        grandchild = {"title": "Too deep", "sourceMessageId": user.id}
        child = {"title": "Sub", "sourceMessageId": assistant.id, "children": [grandchild]}
        text = _outline(user.id, children=[child])

        items = parse_outline(text, collect_messages(registry.get_current()))

        assert [c.title for c in items[0].children] == ["Sub"]
        assert items[0].children[0].children == []

    @pytest.mark.parametrize("text", ["no json here", '{"title": "object"}', "[1, 2"])
    def test_unparseable(self, chatted, text):
        registry, _, _ = chatted
        with pytest.raises(ValueError):
            parse_outline(text, collect_messages(registry.get_current()))


class TestCondenser:
    """Condenser caching and fallback tests."""

    def test_empty_conversation(self, registry: ConversationRegistry, source: Mock):
        log = Condenser(registry, source).get_condensed_log()

        assert log.items == []
        assert not log.regenerated
        source.condense_outline.assert_not_called()
        assert registry.get_current().last_summarized_message_id is None

    def test_unknown_conversation(self, registry: ConversationRegistry, source: Mock):
        with pytest.raises(ValidationError):
            Condenser(registry, source).get_condensed_log("conv_1_zzzzzzzzz")

    def test_idempotent(self, chatted, source: Mock):
        registry, user, assistant = chatted
        source.condense_outline.return_value = _outline(user.id)
        condenser = Condenser(registry, source)

        first = condenser.get_condensed_log()
        second = condenser.get_condensed_log()

        assert first.regenerated
        assert not second.regenerated
        assert second.items == first.items
        assert source.condense_outline.call_count == 1
        conversation = registry.get_current()
        assert conversation.last_summarized_message_id == assistant.id
        assert conversation.condensed_last_updated is not None

    def test_empty_outline_is_cached(self, chatted, source: Mock):
        registry, _, _ = chatted
        condenser = Condenser(registry, source)

        first = condenser.get_condensed_log()
        second = condenser.get_condensed_log()

        assert first.items == []
        assert first.regenerated
        assert not second.regenerated
        assert source.condense_outline.call_count == 1

    def test_same_instant_append_in_main_invalidates(
        self, chatted, source: Mock, monkeypatch
    ):
        registry, user, assistant = chatted
        frozen = assistant.timestamp
        monkeypatch.setattr("branchchat.registry.utcnow", lambda: frozen)
        registry.fork_from_message(assistant.id, "Tangent")
        registry.append_message("in branch")
        registry.switch_branch(MAIN_BRANCH_ID)
        source.condense_outline.return_value = _outline(user.id)
        condenser = Condenser(registry, source)
        condenser.get_condensed_log()

        newest = registry.append_message("new in main")
        log = condenser.get_condensed_log()

        timeline = collect_messages(registry.get_current())
        assert [entry.message.content for entry in timeline][-2:] == [
            "in branch",
            "new in main",
        ]
        assert log.regenerated
        assert registry.get_current().last_summarized_message_id == newest.id

    def test_new_message_invalidates(self, chatted, source: Mock):
        registry, user, _ = chatted
        source.condense_outline.return_value = _outline(user.id)
        condenser = Condenser(registry, source)
        condenser.get_condensed_log()

        newest = registry.append_message("Another question")
        log = condenser.get_condensed_log()

        assert log.regenerated
        assert source.condense_outline.call_count == 2
        assert registry.get_current().last_summarized_message_id == newest.id

    def test_message_in_branch_invalidates(self, chatted, source: Mock):
        registry, user, assistant = chatted
        source.condense_outline.return_value = _outline(user.id)
        condenser = Condenser(registry, source)
        condenser.get_condensed_log()

        registry.fork_from_message(assistant.id, "Tangent")
        assert not condenser.get_condensed_log().regenerated

        registry.append_message("Branch question")
        assert condenser.get_condensed_log().regenerated

    def test_force_refresh(self, chatted, source: Mock):
        registry, user, _ = chatted
        source.condense_outline.return_value = _outline(user.id)
        condenser = Condenser(registry, source)
        condenser.get_condensed_log()

        assert condenser.get_condensed_log(force_refresh=True).regenerated
        assert source.condense_outline.call_count == 2

    def test_transcript_sent_to_source(self, chatted, source: Mock):
        registry, user, _ = chatted
        Condenser(registry, source).get_condensed_log()

        transcript = source.condense_outline.call_args[0][0]
        assert f"[USER {user.id}]" in transcript

    def test_parse_failure_falls_back(self, chatted, source: Mock):
        registry, user, _ = chatted
        source.condense_outline.return_value = "I could not do that."

        log = Condenser(registry, source).get_condensed_log()

        assert log.parse_error
        assert log.error_message == PARSE_ERROR_MESSAGE
        assert [item.title for item in log.items] == [FALLBACK_TITLE]
        assert log.items[0].source_message_id == user.id
        assert registry.get_current().condensed_parse_error

    def test_api_failure_falls_back(self, chatted, source: Mock):
        registry, _, _ = chatted
        source.condense_outline.side_effect = ApiError("Server error: boom", 500)

        log = Condenser(registry, source).get_condensed_log()

        assert log.parse_error
        assert "Server error: boom" in log.error_message
        assert log.items[0].title == FALLBACK_TITLE

    def test_fallback_is_cached(self, chatted, source: Mock):
        registry, _, _ = chatted
        source.condense_outline.return_value = "nope"
        condenser = Condenser(registry, source)
        condenser.get_condensed_log()

        again = condenser.get_condensed_log()

        assert not again.regenerated
        assert again.parse_error
        assert again.error_message == PARSE_ERROR_MESSAGE

    def test_result_is_persisted(self, chatted, source: Mock):
        registry, user, _ = chatted
        registry.store = Mock()
        source.condense_outline.return_value = _outline(user.id)

        Condenser(registry, source).get_condensed_log()

        registry.store.save.assert_called_once()


class TestSearchOutline:
    """search_outline tests."""

    @pytest.fixture
    def items(self) -> list[OutlineItem]:
        return [
            OutlineItem(
                "a",
                "Neural networks",
                "msg_1_aaaaaaaaa",
                children=[
                    OutlineItem("a1", "Backpropagation", "msg_2_aaaaaaaaa"),
                    OutlineItem("a2", "Activation functions", "msg_3_aaaaaaaaa"),
                ],
            ),
            OutlineItem("b", "Deployment", "msg_4_aaaaaaaaa"),
        ]

    def test_blank_query_returns_all(self, items):
        assert search_outline(items, "  ") == items

    def test_parent_match_keeps_children(self, items):
        result = search_outline(items, "neural")
        assert len(result) == 1
        assert len(result[0].children) == 2

    def test_child_match_keeps_only_matching_children(self, items):
        result = search_outline(items, "BACKPROP")
        assert [c.title for c in result[0].children] == ["Backpropagation"]
        assert len(items[0].children) == 2

    def test_no_match(self, items):
        assert search_outline(items, "quantum") == []
