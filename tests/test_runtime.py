"""Tests for timestamp normalization, runtime reduction and title resolution."""

import pytest

from agentdock.core import SemanticEventKind
from agentdock.runtime import (
    CLAUDE_CODE_ANSWERING_KINDS,
    CODEX_ANSWERING_KINDS,
    RECENCY_WINDOW_MS,
    reduce_events,
)
from agentdock.timestamps import normalize_epoch, parse_timestamp_ms
from agentdock.titles import (
    load_json_title_index,
    load_jsonl_title_index,
    path_basename,
    resolve_title,
)


class TestTimestamps:
    @pytest.mark.parametrize("value, expected", [
        (1_700_000_000, 1_700_000_000_000),
        (1_700_000_000_123, 1_700_000_000_123),
        ("1700000000", 1_700_000_000_000),
        (" 1700000000123 ", 1_700_000_000_123),
        (1_700_000_000.9, 1_700_000_000_000),
        ("2023-11-14T22:13:20Z", 1_700_000_000_000),
        ("2023-11-14T22:13:20.500+00:00", 1_700_000_000_500),
        ("2023-11-15T00:13:20+02:00", 1_700_000_000_000),
    ])
    def test_parse(self, value, expected):
        assert parse_timestamp_ms(value) == expected

    @pytest.mark.parametrize("value", [None, True, "", "yesterday", {"t": 1}, float("nan")])
    def test_unparseable(self, value):
        assert parse_timestamp_ms(value) is None

    def test_threshold_is_exclusive(self):
        assert normalize_epoch(999_999_999_999) == 999_999_999_999_000
        assert normalize_epoch(1_000_000_000_000) == 1_000_000_000_000
        assert normalize_epoch(-5) == -5000


class TestReduceEvents:
    NOW = 1_750_000_000_000

    def test_empty(self):
        state = reduce_events([], CODEX_ANSWERING_KINDS, now_ms=self.NOW)
        assert state.agent_answering is False
        assert state.last_event_kind is None
        assert state.last_event_at_ms is None

    def test_only_last_event_counts(self):
        events = [
            (SemanticEventKind.AGENT_TOOL, self.NOW - 2_000),
            (SemanticEventKind.AGENT_MESSAGE, self.NOW - 1_000),
        ]
        state = reduce_events(events, CODEX_ANSWERING_KINDS, now_ms=self.NOW)
        assert state.agent_answering is False
        assert state.last_event_kind == "agent_message"

    def test_event_without_timestamp_keeps_previous_time(self):
        events = [
            (SemanticEventKind.USER_MESSAGE, self.NOW - 1_000),
            (SemanticEventKind.AGENT_PROGRESS, None),
        ]
        state = reduce_events(events, CLAUDE_CODE_ANSWERING_KINDS, now_ms=self.NOW)
        assert state.last_event_kind == "agent_progress"
        assert state.last_event_at_ms == self.NOW - 1_000
        assert state.agent_answering is True

    def test_never_answering_without_timestamp(self):
        events = [(SemanticEventKind.AGENT_TOOL, None)]
        state = reduce_events(events, CLAUDE_CODE_ANSWERING_KINDS, now_ms=self.NOW)
        assert state.agent_answering is False

    def test_window(self):
        fresh = [(SemanticEventKind.AGENT_REASONING, self.NOW - RECENCY_WINDOW_MS)]
        stale = [(SemanticEventKind.AGENT_REASONING, self.NOW - RECENCY_WINDOW_MS - 1)]
        assert reduce_events(fresh, CODEX_ANSWERING_KINDS, now_ms=self.NOW).agent_answering is True
        assert reduce_events(stale, CODEX_ANSWERING_KINDS, now_ms=self.NOW).agent_answering is False

    def test_queue_dequeue_only_counts_for_claude(self):
        events = [(SemanticEventKind.QUEUE_DEQUEUE, self.NOW)]
        assert reduce_events(events, CLAUDE_CODE_ANSWERING_KINDS, now_ms=self.NOW).agent_answering is True
        assert reduce_events(events, CODEX_ANSWERING_KINDS, now_ms=self.NOW).agent_answering is False


class TestTitles:
    def test_precedence(self):
        assert resolve_title(" Official ", "first", "/p/app", "Claude", "abc") == "Official"
        assert resolve_title("  ", "first   prompt", "/p/app", "Claude", "abc") == "first prompt"
        assert resolve_title(None, None, "/p/app/", "Claude", "abc") == "app"
        assert resolve_title(None, "", ".", "Codex", "abc") == "Codex session abc"

    def test_basename_handles_windows_paths(self):
        assert path_basename("C:\\Users\\me\\proj") == "proj"
        assert path_basename(".") is None
        assert path_basename("") is None

    def test_json_index_shapes(self, tmp_path):
        listed = tmp_path / "list.json"
        listed.write_text('[{"sessionId": "a", "summary": "Sum"}, "junk"]', encoding="utf-8")
        wrapped = tmp_path / "wrapped.json"
        wrapped.write_text('{"entries": [{"sessionId": "b", "customTitle": "Mine", "summary": "S"}]}',
                           encoding="utf-8")
        keys = ("customTitle", "summary")
        assert load_json_title_index(listed, "sessionId", keys) == {"a": "Sum"}
        assert load_json_title_index(wrapped, "sessionId", keys) == {"b": "Mine"}
        assert load_json_title_index(tmp_path / "missing.json", "sessionId", keys) == {}

    def test_malformed_json_index(self, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text("{", encoding="utf-8")
        assert load_json_title_index(broken, "sessionId", ("summary",)) == {}

    def test_jsonl_index_later_lines_win(self, tmp_path):
        index = tmp_path / "session_index.jsonl"
        index.write_text(
            '{"id": "x", "thread_name": "one"}\nnot json\n[1, 2]\n{"id": "x", "title": "two"}\n',
            encoding="utf-8",
        )
        assert load_jsonl_title_index(index, "id", ("thread_name", "title")) == {"x": "two"}
