"""Tests for hook dispatch and the hook entry point."""

import io
import json
import logging

import pytest

from claude_track import db
from claude_track.models import EnvelopeError, EventKind
from claude_track.router import dispatch, run_hook, truncate_response
from conftest import assistant_line, plan_call, tool_result


def _send(con, now="2025-01-01T00:00:00Z", **payload):
    return dispatch(json.dumps(payload), con, now=now)


def _rows(con, sql, *params):
    return [dict(r) for r in con.execute(sql, params).fetchall()]


class TestSessionEvents:
    def test_start_then_end(self, con):
        _send(con, hook_event_name="SessionStart", session_id="s1", cwd="/work",
              transcript_path="/t.jsonl", reason="startup", now="t0")
        _send(con, hook_event_name="SessionEnd", session_id="s1", reason="logout", now="t9")
        row = _rows(con, "SELECT * FROM sessions")[0]
        assert row["started_at"] == "t0"
        assert row["start_reason"] == "startup"
        assert row["cwd"] == "/work"
        assert row["ended_at"] == "t9"
        assert row["end_reason"] == "logout"

    def test_second_start_ignored(self, con):
        _send(con, hook_event_name="SessionStart", session_id="s1", cwd="/a", now="t0")
        _send(con, hook_event_name="SessionStart", session_id="s1", cwd="/b", now="t1")
        rows = _rows(con, "SELECT started_at, cwd FROM sessions")
        assert rows == [{"started_at": "t0", "cwd": "/a"}]

    def test_end_without_start_creates_row(self, con):
        _send(con, hook_event_name="SessionEnd", session_id="s1", reason="clear", now="t5")
        row = _rows(con, "SELECT * FROM sessions")[0]
        assert row["started_at"] is None
        assert row["ended_at"] == "t5"

    def test_prompt_recorded(self, con):
        _send(con, hook_event_name="UserPromptSubmit", session_id="s1", prompt="fix it")
        assert _rows(con, "SELECT session_id, prompt_text FROM prompts") == [
            {"session_id": "s1", "prompt_text": "fix it"}
        ]


class TestToolEvents:
    def test_pre_then_post_updates_in_place(self, con):
        _send(con, hook_event_name="PreToolUse", session_id="s1", tool_name="Read",
              tool_use_id="toolu_1", tool_input={"file_path": "a.py"}, cwd="/w")
        _send(con, hook_event_name="PostToolUse", session_id="s1", tool_name="Read",
              tool_use_id="toolu_1", tool_response="contents")
        rows = _rows(con, "SELECT tool_use_id, input, response_summary FROM tool_uses")
        assert rows == [{
            "tool_use_id": "toolu_1",
            "input": json.dumps({"file_path": "a.py"}),
            "response_summary": "contents",
        }]

    def test_post_without_pre_inserts(self, con):
        _send(con, hook_event_name="PostToolUse", session_id="s1", tool_name="Bash",
              tool_use_id="toolu_9", tool_input={"command": "ls"}, tool_response={"ok": True})
        row = _rows(con, "SELECT * FROM tool_uses")[0]
        assert row["tool_name"] == "Bash"
        assert row["response_summary"] == '{"ok": true}'

    def test_missing_event_name_routes_as_post_tool_use(self, con):
        kind = _send(con, session_id="s1", tool_name="Edit", tool_use_id="toolu_2",
                     tool_response="done")
        assert kind is EventKind.POST_TOOL_USE
        assert _rows(con, "SELECT tool_use_id, response_summary FROM tool_uses") == [
            {"tool_use_id": "toolu_2", "response_summary": "done"}
        ]

    def test_duplicate_pre_is_single_row(self, con):
        for _ in range(2):
            _send(con, hook_event_name="PreToolUse", session_id="s1", tool_name="Read",
                  tool_use_id="toolu_1")
        assert con.execute("SELECT COUNT(*) FROM tool_uses").fetchone()[0] == 1

    def test_long_response_truncated(self, con):
        _send(con, hook_event_name="PostToolUse", session_id="s1", tool_name="Read",
              tool_use_id="toolu_1", tool_response="x" * 2000)
        summary = _rows(con, "SELECT response_summary FROM tool_uses")[0]["response_summary"]
        assert len(summary) == 500
        assert summary.endswith("...")

    def test_malformed_tool_input_uses_defaults(self, con):
        _send(con, hook_event_name="PreToolUse", session_id="s1", tool_name="ExitPlanMode",
              tool_use_id="toolu_p", tool_input="not an object")
        assert _rows(con, "SELECT plan_text, accepted FROM plans") == [
            {"plan_text": "", "accepted": None}
        ]


class TestTruncateResponse:
    def test_short_string_unchanged(self):
        assert truncate_response("abc") == "abc"

    def test_exact_limit_unchanged(self):
        assert truncate_response("y" * 500) == "y" * 500

    def test_object_serialized(self):
        assert truncate_response({"a": 1}) == '{"a": 1}'

    def test_over_limit(self):
        out = truncate_response("z" * 501)
        assert out == "z" * 497 + "..."


class TestStop:
    def test_stop_accounts_tokens(self, con, transcript):
        path = transcript(assistant_line(100, 50), assistant_line(150, 75))
        _send(con, hook_event_name="Stop", session_id="s1", transcript_path=path)
        snap = db.get_token_snapshot(con, "s1")
        assert (snap.usage.input_tokens, snap.usage.output_tokens) == (250, 125)

    def test_stop_falls_back_to_session_transcript(self, con, transcript):
        path = transcript(assistant_line(10, 5))
        _send(con, hook_event_name="SessionStart", session_id="s1", transcript_path=path)
        _send(con, hook_event_name="Stop", session_id="s1")
        assert db.get_token_snapshot(con, "s1").usage.api_call_count == 1

    def test_stop_without_any_path_is_noop(self, con):
        _send(con, hook_event_name="Stop", session_id="s1")
        assert con.execute("SELECT COUNT(*) FROM token_usage").fetchone()[0] == 0

    def test_plan_lifecycle(self, con, transcript):
        _send(con, hook_event_name="PreToolUse", session_id="s1", tool_name="ExitPlanMode",
              tool_use_id="toolu_a", tool_input={"plan": "Build a REST API"})
        plan = _rows(con, "SELECT plan_text, accepted FROM plans")[0]
        assert plan == {"plan_text": "Build a REST API", "accepted": None}

        path = transcript(plan_call("toolu_a", "Build a REST API"), tool_result("toolu_a"))
        _send(con, hook_event_name="Stop", session_id="s1", transcript_path=path)
        assert _rows(con, "SELECT accepted FROM plans WHERE tool_use_id = 'toolu_a'") == [
            {"accepted": 1}
        ]

        _send(con, hook_event_name="PreToolUse", session_id="s1", tool_name="ExitPlanMode",
              tool_use_id="toolu_b", tool_input={"plan": "Rewrite everything"})
        transcript(plan_call("toolu_b"), tool_result("toolu_b", is_error=True))
        _send(con, hook_event_name="Stop", session_id="s1", transcript_path=path)
        assert _rows(con, "SELECT accepted FROM plans WHERE tool_use_id = 'toolu_b'") == [
            {"accepted": 0}
        ]
        assert _rows(con, "SELECT accepted FROM plans WHERE tool_use_id = 'toolu_a'") == [
            {"accepted": 1}
        ]


class TestDispatchErrors:
    def test_unknown_event_is_noop(self, con):
        assert _send(con, hook_event_name="Notification", session_id="s1") is None
        for table in ("sessions", "tool_uses", "prompts", "token_usage", "plans"):
            assert con.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0] == 0

    def test_non_string_event_name_is_noop(self, con):
        raw = '{"hook_event_name": 42, "session_id": "s1", "tool_use_id": "t"}'
        assert dispatch(raw, con) is None
        assert con.execute("SELECT COUNT(*) FROM tool_uses").fetchone()[0] == 0

    def test_invalid_json_raises(self, con):
        with pytest.raises(json.JSONDecodeError):
            dispatch("{oops", con)

    def test_non_object_raises(self, con):
        with pytest.raises(EnvelopeError):
            dispatch('"just a string"', con)


class TestRunHook:
    def test_records_event(self, tmp_path):
        db_path = str(tmp_path / "track.db")
        payload = json.dumps({"hook_event_name": "UserPromptSubmit", "session_id": "s1",
                              "prompt": "hello"})
        assert run_hook(io.StringIO(payload), db_path=db_path) == 0
        with db.connect(db_path) as con:
            assert con.execute("SELECT prompt_text FROM prompts").fetchone()[0] == "hello"

    def test_garbage_still_returns_zero(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR):
            code = run_hook(io.StringIO("not json at all"), db_path=str(tmp_path / "t.db"))
        assert code == 0
        assert "claude-track hook" in caplog.text

    def test_uses_configured_db(self, track_home):
        payload = json.dumps({"hook_event_name": "SessionStart", "session_id": "s1"})
        assert run_hook(io.StringIO(payload)) == 0
        assert (track_home / "claude-track.db").exists()
