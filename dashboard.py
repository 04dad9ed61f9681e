#!/usr/bin/env python3
"""
Interactive usage dashboard for claude-track.

Usage:
    python3 dashboard.py             # open dashboard
    python3 dashboard.py --backfill  # import plans from old transcripts first

Keyboard shortcuts:
    r / F5   Refresh data
    q / Q    Quit
    ↑ ↓      Navigate tables
    Enter    Show a session's tool breakdown (on Sessions tab)
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime

# Allow running from any directory
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from claude_track import db
from claude_track.backfill import backfill_plans
from claude_track.config import OPTIONS, load_config, set_option
from claude_track.pricing import row_cost

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import (
    DataTable,
    Footer,
    Header,
    Static,
    TabbedContent,
    TabPane,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fmt_tokens(n: int | None) -> str:
    if n is None:
        return "—"
    if n >= 1_000_000:
        return f"{n/1_000_000:.2f}M"
    if n >= 1_000:
        return f"{n/1_000:.1f}K"
    return str(n)


def _fmt_cost(usd: float | None) -> str:
    if usd is None:
        return "—"
    if usd >= 1:
        return f"${usd:.2f}"
    return f"${usd:.4f}"


def _fmt_ts(iso: str | None) -> str:
    if not iso:
        return "—"
    try:
        dt = datetime.fromisoformat(iso.replace("Z", "+00:00"))
        return dt.astimezone().strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return iso[:16]


def _fmt_duration(start: str | None, end: str | None) -> str:
    if not start or not end:
        return "—"
    try:
        seconds = int(
            (datetime.fromisoformat(end.replace("Z", "+00:00"))
             - datetime.fromisoformat(start.replace("Z", "+00:00"))).total_seconds()
        )
    except ValueError:
        return "—"
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h{(seconds % 3600) // 60:02d}m"


def _fmt_accepted(value: int | None) -> str:
    if value is None:
        return "pending"
    return "accepted" if value else "rejected"


def _short_path(path: str, max_len: int = 40) -> str:
    home = os.path.expanduser("~")
    if path.startswith(home):
        path = "~" + path[len(home):]
    if len(path) > max_len:
        return "…" + path[-(max_len - 1):]
    return path


def _one_line(text: str | None, max_len: int = 70) -> str:
    text = " ".join((text or "").split())
    if len(text) > max_len:
        return text[: max_len - 1] + "…"
    return text


def _activity_chart(daily: list[dict], width: int = 50) -> str:
    """ASCII bar chart of tool calls per day."""
    if not daily:
        return "  No data yet."

    max_val = max((d["tool_calls"] or 0) for d in daily) or 1

    lines = ["  Tool calls per day (last 30 days)\n", "  " + "─" * (width + 2)]
    for d in daily:
        calls = d["tool_calls"] or 0
        filled = int(calls / max_val * width)
        bar = "█" * filled + "░" * (width - filled)
        lines.append(f"  {d['day']}  [{bar}]  {calls:>5} calls  {d['prompts'] or 0:>4} prompts")
    lines.append("  " + "─" * (width + 2))
    lines.append(f"\n  Busiest day: {max_val} calls")
    return "\n".join(lines)


def _total_tokens(d: dict) -> int:
    return (
        (d.get("input_tokens") or 0)
        + (d.get("output_tokens") or 0)
        + (d.get("cache_creation_tokens") or 0)
        + (d.get("cache_read_tokens") or 0)
    )


# ---------------------------------------------------------------------------
# Stats banner
# ---------------------------------------------------------------------------

class StatsBanner(Static):
    """Single-line all-time summary."""

    DEFAULT_CSS = """
    StatsBanner {
        height: 3;
        padding: 1 2;
        background: $panel;
        color: $text;
        border-bottom: solid $primary;
    }
    """

    def update_stats(self, totals: dict, cost: float) -> None:
        since = totals.get("tracking_since")
        text = (
            f"[bold]All-time:[/bold] {_fmt_tokens(_total_tokens(totals))} tokens | "
            f"{_fmt_cost(cost)} | "
            f"{totals.get('sessions') or 0} sessions | "
            f"{totals.get('prompts') or 0} prompts | "
            f"{totals.get('tool_calls') or 0} tool calls | "
            f"{totals.get('plans') or 0} plans"
            f"    [dim]since {_fmt_ts(since)}[/dim]"
        )
        self.update(text)


# ---------------------------------------------------------------------------
# Sessions tab
# ---------------------------------------------------------------------------

class SessionsTable(DataTable):
    COLUMNS = [
        "Started", "Duration", "Project", "Model", "Prompts",
        "Tools", "API calls", "Input", "Output", "Cache-R", "Cost",
    ]

    def on_mount(self) -> None:
        self.cursor_type = "row"
        for label in self.COLUMNS:
            self.add_column(label)

    def populate(self, sessions: list[dict]) -> None:
        self.clear()
        for s in sessions:
            self.add_row(
                _fmt_ts(s.get("started_at")),
                _fmt_duration(s.get("started_at"), s.get("ended_at")),
                _short_path(s.get("cwd") or "?"),
                s.get("model") or "—",
                str(s.get("prompts") or 0),
                str(s.get("tool_calls") or 0),
                str(s.get("api_calls") or 0),
                _fmt_tokens(s.get("input_tokens")),
                _fmt_tokens(s.get("output_tokens")),
                _fmt_tokens(s.get("cache_read_tokens")),
                _fmt_cost(row_cost(s)),
                key=s["session_id"],
            )


class SessionDetail(Static):
    """Tool breakdown for the selected session."""

    DEFAULT_CSS = """
    SessionDetail {
        height: 12;
        padding: 1 2;
        background: $surface;
        border-top: solid $primary;
        overflow-y: auto;
    }
    """

    def show_session(self, session: dict, tools: list[dict]) -> None:
        session_id = session["session_id"]
        header = (
            f"[bold]{_short_path(session.get('cwd') or '?')}[/bold]  ·  "
            f"session {session_id[:8]}…  ·  ended: {session.get('end_reason') or '—'}\n"
        )
        if not tools:
            self.update(header + "  [dim]No tool calls recorded.[/dim]")
            return
        width = max(len(t["tool_name"] or "?") for t in tools)
        rows = [header]
        for t in tools:
            rows.append(f"  {(t['tool_name'] or '?').ljust(width)}  {t['calls']:>5}")
        self.update("\n".join(rows))

    def clear_detail(self) -> None:
        self.update("  [dim]Select a session above to see its tool calls.[/dim]")


# ---------------------------------------------------------------------------
# Other tabs
# ---------------------------------------------------------------------------

class ModelsTable(DataTable):
    def on_mount(self) -> None:
        self.cursor_type = "row"
        for col in ["Model", "Sessions", "API calls", "Input", "Output", "Cache-R", "Cache-W", "Cost"]:
            self.add_column(col)

    def populate(self, models: list[dict]) -> None:
        self.clear()
        for m in models:
            self.add_row(
                m.get("model", "?"),
                str(m.get("sessions") or 0),
                str(m.get("api_calls") or 0),
                _fmt_tokens(m.get("input_tokens")),
                _fmt_tokens(m.get("output_tokens")),
                _fmt_tokens(m.get("cache_read_tokens")),
                _fmt_tokens(m.get("cache_creation_tokens")),
                _fmt_cost(row_cost(m)),
            )


class ToolsTable(DataTable):
    def on_mount(self) -> None:
        self.cursor_type = "row"
        for col in ["Tool", "Calls", "Sessions"]:
            self.add_column(col)

    def populate(self, tools: list[dict]) -> None:
        self.clear()
        for t in tools:
            self.add_row(t["tool_name"], str(t["calls"]), str(t["sessions"]))


class PlansTable(DataTable):
    def on_mount(self) -> None:
        self.cursor_type = "row"
        for col in ["Proposed", "Outcome", "Session", "Plan"]:
            self.add_column(col)

    def populate(self, plans: list[dict]) -> None:
        self.clear()
        for p in plans:
            self.add_row(
                _fmt_ts(p.get("timestamp")),
                _fmt_accepted(p.get("accepted")),
                (p.get("session_id") or "?")[:8],
                _one_line(p.get("plan_text")),
            )


class ProjectsTable(DataTable):
    def on_mount(self) -> None:
        self.cursor_type = "row"
        for col in ["Project", "Sessions", "Tool calls"]:
            self.add_column(col)

    def populate(self, projects: list[dict]) -> None:
        self.clear()
        for p in projects:
            self.add_row(
                _short_path(p.get("cwd") or "?", 60),
                str(p.get("sessions") or 0),
                str(p.get("tool_calls") or 0),
            )


class DailyChart(Static):
    DEFAULT_CSS = """
    DailyChart {
        padding: 1 2;
        overflow-y: auto;
    }
    """

    def populate(self, daily: list[dict]) -> None:
        self.update(_activity_chart(daily))


# ---------------------------------------------------------------------------
# Main App
# ---------------------------------------------------------------------------

class ClaudeTrackApp(App):
    """Claude Code usage tracker"""

    CSS = """
    Screen {
        background: $surface;
        layout: vertical;
    }
    #stats-banner {
        height: auto;
        min-height: 3;
    }
    TabbedContent {
        height: 1fr;
    }
    TabPane {
        padding: 0;
    }
    DataTable {
        height: 1fr;
    }
    #sessions-pane {
        height: 1fr;
        layout: vertical;
    }
    """

    BINDINGS = [
        Binding("r,f5", "refresh", "Refresh"),
        Binding("q,Q", "quit", "Quit"),
    ]

    TITLE = "Claude Track"
    SUB_TITLE = "↑↓ navigate · Enter drill-down · R refresh · Q quit"

    def __init__(self, db_path: str) -> None:
        super().__init__()
        self.db_path = db_path
        self._sessions_data: list[dict] = []

    def compose(self) -> ComposeResult:
        yield Header()
        yield StatsBanner(id="stats-banner")
        with TabbedContent(id="tabs"):
            with TabPane("Sessions", id="tab-sessions"):
                with Vertical(id="sessions-pane"):
                    yield SessionsTable(id="sessions-table")
                    yield SessionDetail(id="session-detail")
            with TabPane("Models", id="tab-models"):
                yield ModelsTable(id="models-table")
            with TabPane("Tools", id="tab-tools"):
                yield ToolsTable(id="tools-table")
            with TabPane("Plans", id="tab-plans"):
                yield PlansTable(id="plans-table")
            with TabPane("Projects", id="tab-projects"):
                yield ProjectsTable(id="projects-table")
            with TabPane("Daily", id="tab-daily"):
                yield DailyChart(id="daily-chart")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#session-detail", SessionDetail).clear_detail()
        self.refresh_data()
        # Hooks keep writing while the dashboard is open
        self.set_interval(10, self.refresh_data)

    def refresh_data(self) -> None:
        """Pull fresh data from the DB and update all widgets."""
        with db.connect(self.db_path) as con:
            totals = db.query_totals(con)
            sessions = db.query_sessions(con)
            models = db.query_models(con)
            tools = db.query_tools(con)
            plans = db.query_plans(con)
            projects = db.query_projects(con)
            daily = db.query_daily(con, 30)

        self._sessions_data = sessions
        cost = sum(row_cost(m) for m in models)

        self.query_one("#stats-banner", StatsBanner).update_stats(totals, cost)
        self.query_one("#sessions-table", SessionsTable).populate(sessions)
        self.query_one("#models-table", ModelsTable).populate(models)
        self.query_one("#tools-table", ToolsTable).populate(tools)
        self.query_one("#plans-table", PlansTable).populate(plans)
        self.query_one("#projects-table", ProjectsTable).populate(projects)
        self.query_one("#daily-chart", DailyChart).populate(daily)

    def action_refresh(self) -> None:
        self.refresh_data()

    @on(DataTable.RowSelected, "#sessions-table")
    def on_session_selected(self, event: DataTable.RowSelected) -> None:
        session_id = str(event.row_key.value)
        session = next(
            (s for s in self._sessions_data if s["session_id"] == session_id), None
        )
        if session is None:
            return
        with db.connect(self.db_path) as con:
            tools = db.query_session_tools(con, session_id)
        self.query_one("#session-detail", SessionDetail).show_session(session, tools)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(description="Claude Code usage tracker")
    parser.add_argument(
        "--backfill",
        action="store_true",
        help="Import ExitPlanMode plans from existing transcripts before opening",
    )
    parser.add_argument(
        "--db",
        help="Path to the tracking database (default: from config)",
    )
    parser.add_argument(
        "--set",
        nargs=2,
        metavar=("KEY", "VALUE"),
        help=f"Save a config override and exit (keys: {', '.join(OPTIONS)})",
    )
    args = parser.parse_args()

    cfg = load_config()

    if args.set:
        try:
            cfg = set_option(cfg, *args.set)
        except ValueError as e:
            parser.error(str(e))
        print(f"Saved to {cfg.config_path}")
        return

    db_path = args.db or cfg.db_path

    if args.backfill:
        print(f"Scanning transcripts in {cfg.projects_dir} …", flush=True)
        with db.connect(db_path) as con:
            result = backfill_plans(con, cfg.projects_dir)
        print(result.summary())

    app = ClaudeTrackApp(db_path)
    app.run()


if __name__ == "__main__":
    main()
