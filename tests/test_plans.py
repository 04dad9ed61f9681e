"""Tests for plan recording and resolution."""

from claude_track import db
from claude_track.plans import find_resolutions, resolve_pending_plans
from conftest import plan_call, tool_result


def _accepted(con, tool_use_id):
    return con.execute(
        "SELECT accepted FROM plans WHERE tool_use_id = ?", (tool_use_id,)
    ).fetchone()[0]


class TestResolution:
    def test_accept_and_reject(self, con, transcript):
        db.insert_plan(con, "s1", "toolu_a", "t", "plan a")
        db.insert_plan(con, "s1", "toolu_b", "t", "plan b")
        path = transcript(
            plan_call("toolu_a"), tool_result("toolu_a"),
            plan_call("toolu_b"), tool_result("toolu_b", is_error=True),
        )
        resolved = resolve_pending_plans(con, "s1", path)
        assert resolved == {"toolu_a": True, "toolu_b": False}
        assert _accepted(con, "toolu_a") == 1
        assert _accepted(con, "toolu_b") == 0

    def test_unresolved_stays_pending(self, con, transcript):
        db.insert_plan(con, "s1", "toolu_a", "t", "plan a")
        path = transcript(plan_call("toolu_a"))
        assert resolve_pending_plans(con, "s1", path) == {}
        assert _accepted(con, "toolu_a") is None
        assert db.get_pending_plan_ids(con, "s1") == ["toolu_a"]

    def test_resolution_is_idempotent(self, con, transcript):
        db.insert_plan(con, "s1", "toolu_a", "t", "plan a")
        path = transcript(tool_result("toolu_a"))
        resolve_pending_plans(con, "s1", path)
        # Already resolved: a contradicting later result must not flip it
        transcript(tool_result("toolu_a", is_error=True))
        assert resolve_pending_plans(con, "s1", path) == {}
        assert _accepted(con, "toolu_a") == 1
        assert db.update_plan_accepted(con, "toolu_a", False) == 0

    def test_find_resolutions_deterministic(self, transcript):
        path = transcript(tool_result("toolu_a"), tool_result("toolu_x", is_error=True))
        first = find_resolutions(path, ["toolu_a", "toolu_x", "toolu_none"])
        second = find_resolutions(path, ["toolu_a", "toolu_x", "toolu_none"])
        assert first == second == {"toolu_a": True, "toolu_x": False}

    def test_other_sessions_untouched(self, con, transcript):
        db.insert_plan(con, "s2", "toolu_a", "t", "plan a")
        path = transcript(tool_result("toolu_a"))
        assert resolve_pending_plans(con, "s1", path) == {}
        assert _accepted(con, "toolu_a") is None


class TestInsertPlan:
    def test_duplicate_id_ignored(self, con):
        assert db.insert_plan(con, "s1", "toolu_a", "t", "plan") is True
        assert db.insert_plan(con, "s1", "toolu_a", "t2", "plan again") is False
        assert con.execute("SELECT COUNT(*) FROM plans").fetchone()[0] == 1
