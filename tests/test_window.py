"""Tests for the sliding window and tool-pair preservation."""

import logging

import pytest

from tabpilot.api.models import (
    assistant_message,
    is_tool_result_message,
    text,
    tool_invocation,
    tool_result,
    user_message,
)
from tabpilot.api.window import find_orphans, trim_window


def chat(n: int) -> list:
    """n alternating plain user/assistant messages."""
    return [
        user_message(f"u{i}") if i % 2 == 0 else assistant_message(f"a{i}")
        for i in range(n)
    ]


def tool_pair(call_id: str, name: str = "click"):
    return (
        assistant_message([text("working"), tool_invocation(call_id, name, {"x": 1, "y": 1})]),
        user_message([tool_result(call_id, '{"success": true}')]),
    )


class TestTrimWindow:
    def test_short_history_unchanged(self):
        msgs = chat(5)
        assert trim_window(msgs, 10) == msgs

    def test_returns_new_list(self):
        msgs = chat(3)
        assert trim_window(msgs, 10) is not msgs

    def test_plain_trim_keeps_last_n(self):
        msgs = chat(12)
        result = trim_window(msgs, 10)
        assert result == msgs[-10:]

    def test_extends_to_keep_pair(self):
        call, answer = tool_pair("7")
        msgs = [user_message("start"), call, answer, *chat(9)]
        assert len(msgs) == 12

        result = trim_window(msgs, 10)

        assert len(result) == 11
        assert result[0] is call
        assert result[1] is answer
        assert find_orphans(result) == set()

    def test_pair_at_end_survives(self):
        call, answer = tool_pair("t9")
        msgs = [*chat(10), call, answer]
        result = trim_window(msgs, 10)
        assert len(result) == 10
        assert result[-2:] == [call, answer]

    def test_never_starts_with_tool_result_when_pair_exists(self):
        msgs = []
        for i in range(8):
            msgs.extend(tool_pair(f"t{i}"))
        for size in range(1, len(msgs)):
            result = trim_window(msgs, size)
            assert not is_tool_result_message(result[0])
            assert find_orphans(result) == set()

    def test_idempotent(self):
        call, answer = tool_pair("7")
        msgs = [user_message("start"), call, answer, *chat(9)]
        once = trim_window(msgs, 10)
        assert trim_window(once, 11) == once

    def test_orphan_result_not_extended_further(self, caplog):
        # a tool_result preceded by a plain message: the input is already broken
        msgs = [*chat(3), user_message([tool_result("lost", "x")]), *chat(2)]
        with caplog.at_level(logging.WARNING, logger="tabpilot.api.window"):
            result = trim_window(msgs, 3)
        assert len(result) == 4
        assert "not extending further" in caplog.text

    def test_debug_log_lists_unpaired_ids(self, caplog):
        msgs = [*chat(3), user_message([tool_result("lost", "x")]), *chat(2)]
        with caplog.at_level(logging.DEBUG, logger="tabpilot.api.window"):
            trim_window(msgs, 3)
        assert "unpaired tool ids: ['lost']" in caplog.text

    def test_logs_trim(self, caplog):
        with caplog.at_level(logging.INFO, logger="tabpilot.api.window"):
            trim_window(chat(12), 10)
        assert "Trimmed conversation from 12 to 10 messages" in caplog.text

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            trim_window(chat(2), 0)


class TestFindOrphans:
    def test_complete_pairs(self):
        call, answer = tool_pair("a")
        assert find_orphans([user_message("go"), call, answer]) == set()

    def test_unanswered_invocation(self):
        call, _ = tool_pair("a")
        assert find_orphans([user_message("go"), call]) == {"a"}

    def test_unmatched_result(self):
        _, answer = tool_pair("a")
        assert find_orphans([answer]) == {"a"}
