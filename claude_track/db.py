"""
SQLite persistence layer for claude-track.

DB location: ~/.claude/claude-track.db (see config.load_config)

Every hook invocation is its own process, so writes are single statements
keyed on the row's natural id and safe to race against a sibling hook.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Generator, Optional

from .models import TokenSnapshot, TokenUsage

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id      TEXT PRIMARY KEY,
    started_at      TEXT,
    ended_at        TEXT,
    start_reason    TEXT,
    end_reason      TEXT,
    cwd             TEXT,
    transcript_path TEXT
);

CREATE TABLE IF NOT EXISTS tool_uses (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    tool_use_id      TEXT,
    session_id       TEXT,
    tool_name        TEXT,
    timestamp        TEXT,
    cwd              TEXT,
    input            TEXT,
    response_summary TEXT
);

CREATE TABLE IF NOT EXISTS prompts (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id  TEXT,
    timestamp   TEXT,
    prompt_text TEXT
);

CREATE TABLE IF NOT EXISTS token_usage (
    id                     INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id             TEXT,
    timestamp              TEXT,
    model                  TEXT,
    input_tokens           INTEGER DEFAULT 0,
    cache_creation_tokens  INTEGER DEFAULT 0,
    cache_read_tokens      INTEGER DEFAULT 0,
    output_tokens          INTEGER DEFAULT 0,
    api_call_count         INTEGER DEFAULT 0,
    last_transcript_offset INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS plans (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id  TEXT,
    tool_use_id TEXT,
    timestamp   TEXT,
    plan_text   TEXT,
    accepted    INTEGER
);

CREATE INDEX IF NOT EXISTS idx_tool_uses_tool_use_id ON tool_uses(tool_use_id);
CREATE INDEX IF NOT EXISTS idx_tool_uses_session     ON tool_uses(session_id);
CREATE INDEX IF NOT EXISTS idx_prompts_session       ON prompts(session_id);
CREATE INDEX IF NOT EXISTS idx_plans_tool_use_id     ON plans(tool_use_id);
CREATE INDEX IF NOT EXISTS idx_plans_session         ON plans(session_id);
"""

_TOKEN_USAGE_INDEX = "idx_token_usage_session"


@contextmanager
def connect(db_path: str) -> Generator[sqlite3.Connection, None, None]:
    """Open (creating if needed) the database, commit on success, always close."""
    parent = os.path.dirname(db_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    con = sqlite3.connect(db_path, timeout=5)
    con.row_factory = sqlite3.Row
    try:
        con.execute("PRAGMA journal_mode=WAL")
        init_db(con)
        yield con
        con.commit()
    finally:
        con.close()


def init_db(con: sqlite3.Connection) -> None:
    """Create tables and bring databases written by older versions up to date."""
    con.executescript(_SCHEMA)

    columns = {row[1] for row in con.execute("PRAGMA table_info(token_usage)")}
    if "last_transcript_offset" not in columns:
        con.execute(
            "ALTER TABLE token_usage ADD COLUMN last_transcript_offset INTEGER DEFAULT 0"
        )

    has_index = con.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'index' AND name = ?",
        (_TOKEN_USAGE_INDEX,),
    ).fetchone()
    if not has_index:
        # Older versions appended one row per Stop; collapse before enforcing uniqueness
        removed = dedup_token_usage(con)
        if removed:
            logger.info("removed %d duplicate token_usage rows", removed)
        con.execute(
            f"CREATE UNIQUE INDEX IF NOT EXISTS {_TOKEN_USAGE_INDEX} ON token_usage(session_id)"
        )
    con.commit()


def dedup_token_usage(con: sqlite3.Connection) -> int:
    """Keep one token_usage row per session: highest api_call_count, then newest id."""
    cur = con.execute(
        """
        DELETE FROM token_usage WHERE id NOT IN (
            SELECT id FROM token_usage t1
            WHERE t1.id = (
                SELECT t2.id FROM token_usage t2
                WHERE t2.session_id IS t1.session_id
                ORDER BY t2.api_call_count DESC, t2.id DESC
                LIMIT 1
            )
        )
        """
    )
    return cur.rowcount


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def insert_session_start(
    con: sqlite3.Connection,
    session_id: str,
    started_at: str,
    start_reason: str,
    cwd: str,
    transcript_path: str,
) -> None:
    """First start wins; a repeated SessionStart for the same id is ignored."""
    con.execute(
        """
        INSERT OR IGNORE INTO sessions
            (session_id, started_at, start_reason, cwd, transcript_path)
        VALUES (?, ?, ?, ?, ?)
        """,
        (session_id, started_at, start_reason, cwd, transcript_path),
    )
    con.commit()


def update_session_end(
    con: sqlite3.Connection,
    session_id: str,
    ended_at: str,
    end_reason: str,
) -> None:
    """Record the end of a session, creating the row if its start was never seen."""
    con.execute(
        """
        INSERT INTO sessions (session_id, ended_at, end_reason)
        VALUES (?, ?, ?)
        ON CONFLICT(session_id) DO UPDATE SET
            ended_at   = excluded.ended_at,
            end_reason = excluded.end_reason
        """,
        (session_id, ended_at, end_reason),
    )
    con.commit()


def insert_prompt(
    con: sqlite3.Connection, session_id: str, timestamp: str, prompt_text: str
) -> None:
    con.execute(
        "INSERT INTO prompts (session_id, timestamp, prompt_text) VALUES (?, ?, ?)",
        (session_id, timestamp, prompt_text),
    )
    con.commit()


def insert_tool_use(
    con: sqlite3.Connection,
    tool_use_id: Optional[str],
    session_id: str,
    tool_name: str,
    timestamp: str,
    cwd: str,
    input_json: str,
) -> None:
    """Insert a PreToolUse row; a second event for a known tool_use_id is a no-op."""
    con.execute(
        """
        INSERT INTO tool_uses (tool_use_id, session_id, tool_name, timestamp, cwd, input)
        SELECT ?, ?, ?, ?, ?, ?
        WHERE ? IS NULL
           OR NOT EXISTS (SELECT 1 FROM tool_uses WHERE tool_use_id = ?)
        """,
        (tool_use_id, session_id, tool_name, timestamp, cwd, input_json,
         tool_use_id, tool_use_id),
    )
    con.commit()


def update_tool_use_response(
    con: sqlite3.Connection,
    tool_use_id: Optional[str],
    session_id: str,
    tool_name: str,
    timestamp: str,
    cwd: str,
    input_json: str,
    response_summary: str,
) -> None:
    """Attach a PostToolUse summary, inserting the row if PreToolUse never fired."""
    updated = 0
    if tool_use_id is not None:
        updated = con.execute(
            "UPDATE tool_uses SET response_summary = ? WHERE tool_use_id = ?",
            (response_summary, tool_use_id),
        ).rowcount
    if updated == 0:
        con.execute(
            """
            INSERT INTO tool_uses
                (tool_use_id, session_id, tool_name, timestamp, cwd, input, response_summary)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (tool_use_id, session_id, tool_name, timestamp, cwd, input_json, response_summary),
        )
    con.commit()


def upsert_token_usage(con: sqlite3.Connection, snapshot: TokenSnapshot) -> None:
    """Write the session's cumulative tally. Never creates a second row per session."""
    u = snapshot.usage
    con.execute(
        """
        INSERT INTO token_usage
            (session_id, timestamp, model, input_tokens, cache_creation_tokens,
             cache_read_tokens, output_tokens, api_call_count, last_transcript_offset)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(session_id) DO UPDATE SET
            timestamp              = excluded.timestamp,
            model                  = excluded.model,
            input_tokens           = excluded.input_tokens,
            cache_creation_tokens  = excluded.cache_creation_tokens,
            cache_read_tokens      = excluded.cache_read_tokens,
            output_tokens          = excluded.output_tokens,
            api_call_count         = excluded.api_call_count,
            last_transcript_offset = excluded.last_transcript_offset
        """,
        (
            snapshot.session_id,
            snapshot.timestamp,
            u.model,
            u.input_tokens,
            u.cache_creation_tokens,
            u.cache_read_tokens,
            u.output_tokens,
            u.api_call_count,
            snapshot.last_transcript_offset,
        ),
    )
    con.commit()


def insert_plan(
    con: sqlite3.Connection,
    session_id: str,
    tool_use_id: Optional[str],
    timestamp: str,
    plan_text: str,
) -> bool:
    """Record a pending plan. Returns False if the tool_use_id is already stored."""
    cur = con.execute(
        """
        INSERT INTO plans (session_id, tool_use_id, timestamp, plan_text)
        SELECT ?, ?, ?, ?
        WHERE ? IS NULL
           OR NOT EXISTS (SELECT 1 FROM plans WHERE tool_use_id = ?)
        """,
        (session_id, tool_use_id, timestamp, plan_text, tool_use_id, tool_use_id),
    )
    con.commit()
    return cur.rowcount > 0


def update_plan_accepted(con: sqlite3.Connection, tool_use_id: str, accepted: bool) -> int:
    """Resolve a pending plan. Already-resolved plans are left untouched."""
    cur = con.execute(
        "UPDATE plans SET accepted = ? WHERE tool_use_id = ? AND accepted IS NULL",
        (int(accepted), tool_use_id),
    )
    con.commit()
    return cur.rowcount


# ---------------------------------------------------------------------------
# Reads used by the hook
# ---------------------------------------------------------------------------

def get_token_snapshot(con: sqlite3.Connection, session_id: str) -> Optional[TokenSnapshot]:
    row = con.execute(
        """
        SELECT timestamp, model, input_tokens, cache_creation_tokens,
               cache_read_tokens, output_tokens, api_call_count, last_transcript_offset
        FROM token_usage
        WHERE session_id = ?
        """,
        (session_id,),
    ).fetchone()
    if row is None:
        return None
    return TokenSnapshot(
        session_id=session_id,
        usage=TokenUsage(
            model=row[1] or "",
            input_tokens=row[2] or 0,
            cache_creation_tokens=row[3] or 0,
            cache_read_tokens=row[4] or 0,
            output_tokens=row[5] or 0,
            api_call_count=row[6] or 0,
        ),
        last_transcript_offset=row[7] or 0,
        timestamp=row[0] or "",
    )


def get_transcript_path(con: sqlite3.Connection, session_id: str) -> Optional[str]:
    row = con.execute(
        "SELECT transcript_path FROM sessions WHERE session_id = ?", (session_id,)
    ).fetchone()
    return row[0] if row and row[0] else None


def get_pending_plan_ids(con: sqlite3.Connection, session_id: str) -> list[str]:
    rows = con.execute(
        """
        SELECT tool_use_id FROM plans
        WHERE session_id = ? AND accepted IS NULL AND tool_use_id IS NOT NULL
        """,
        (session_id,),
    ).fetchall()
    return [r[0] for r in rows]


def get_all_plan_ids(con: sqlite3.Connection) -> set[str]:
    rows = con.execute("SELECT tool_use_id FROM plans WHERE tool_use_id IS NOT NULL").fetchall()
    return {r[0] for r in rows}


# ---------------------------------------------------------------------------
# Query helpers (dashboard)
# ---------------------------------------------------------------------------

def _one(con: sqlite3.Connection, sql: str, params: tuple = ()) -> dict[str, Any]:
    row = con.execute(sql, params).fetchone()
    return dict(row) if row else {}


def _all(con: sqlite3.Connection, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
    return [dict(r) for r in con.execute(sql, params).fetchall()]


def query_totals(con: sqlite3.Connection) -> dict:
    """All-time counts and token sums."""
    totals = _one(
        con,
        """
        SELECT
            SUM(input_tokens)          AS input_tokens,
            SUM(output_tokens)         AS output_tokens,
            SUM(cache_creation_tokens) AS cache_creation_tokens,
            SUM(cache_read_tokens)     AS cache_read_tokens,
            SUM(api_call_count)        AS api_calls
        FROM token_usage
        """,
    )
    for key, table in (
        ("sessions", "sessions"),
        ("prompts", "prompts"),
        ("tool_calls", "tool_uses"),
        ("plans", "plans"),
    ):
        totals[key] = con.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    totals["tracking_since"] = con.execute(
        "SELECT MIN(COALESCE(started_at, ended_at)) FROM sessions"
    ).fetchone()[0]
    return totals


def query_sessions(con: sqlite3.Connection, limit: int = 200) -> list[dict]:
    """Sessions, most recent first, with their token tally and activity counts."""
    return _all(
        con,
        """
        SELECT
            s.session_id,
            s.started_at,
            s.ended_at,
            s.end_reason,
            COALESCE(s.cwd, '')                  AS cwd,
            COALESCE(t.model, '')                AS model,
            COALESCE(t.input_tokens, 0)          AS input_tokens,
            COALESCE(t.output_tokens, 0)         AS output_tokens,
            COALESCE(t.cache_creation_tokens, 0) AS cache_creation_tokens,
            COALESCE(t.cache_read_tokens, 0)     AS cache_read_tokens,
            COALESCE(t.api_call_count, 0)        AS api_calls,
            (SELECT COUNT(*) FROM tool_uses u WHERE u.session_id = s.session_id) AS tool_calls,
            (SELECT COUNT(*) FROM prompts p WHERE p.session_id = s.session_id)   AS prompts
        FROM sessions s
        LEFT JOIN token_usage t ON t.session_id = s.session_id
        ORDER BY COALESCE(s.started_at, s.ended_at) DESC
        LIMIT ?
        """,
        (limit,),
    )


def query_session_tools(con: sqlite3.Connection, session_id: str) -> list[dict]:
    """Tool call counts for one session, busiest first."""
    return _all(
        con,
        """
        SELECT tool_name, COUNT(*) AS calls
        FROM tool_uses
        WHERE session_id = ?
        GROUP BY tool_name
        ORDER BY calls DESC, tool_name ASC
        """,
        (session_id,),
    )


def query_models(con: sqlite3.Connection) -> list[dict]:
    """Token sums by model."""
    return _all(
        con,
        """
        SELECT
            COALESCE(NULLIF(model, ''), 'unknown') AS model,
            COUNT(DISTINCT session_id)  AS sessions,
            SUM(api_call_count)         AS api_calls,
            SUM(input_tokens)           AS input_tokens,
            SUM(output_tokens)          AS output_tokens,
            SUM(cache_creation_tokens)  AS cache_creation_tokens,
            SUM(cache_read_tokens)      AS cache_read_tokens
        FROM token_usage
        GROUP BY COALESCE(NULLIF(model, ''), 'unknown')
        ORDER BY output_tokens DESC
        """,
    )


def query_tools(con: sqlite3.Connection, limit: int = 50) -> list[dict]:
    return _all(
        con,
        """
        SELECT
            COALESCE(tool_name, '?')      AS tool_name,
            COUNT(*)                      AS calls,
            COUNT(DISTINCT session_id)    AS sessions
        FROM tool_uses
        GROUP BY tool_name
        ORDER BY calls DESC
        LIMIT ?
        """,
        (limit,),
    )


def query_plans(con: sqlite3.Connection, limit: int = 200) -> list[dict]:
    return _all(
        con,
        """
        SELECT session_id, tool_use_id, timestamp, plan_text, accepted
        FROM plans
        ORDER BY timestamp DESC, id DESC
        LIMIT ?
        """,
        (limit,),
    )


def query_projects(con: sqlite3.Connection) -> list[dict]:
    """Activity by working directory."""
    return _all(
        con,
        """
        SELECT
            cwd,
            COUNT(DISTINCT session_id) AS sessions,
            COUNT(*)                   AS tool_calls
        FROM tool_uses
        WHERE cwd IS NOT NULL AND cwd != ''
        GROUP BY cwd
        ORDER BY tool_calls DESC
        """,
    )


def query_daily(con: sqlite3.Connection, days: int = 30) -> list[dict]:
    """Tool calls and prompts per day for the last N days."""
    return _all(
        con,
        """
        SELECT day, SUM(tool) AS tool_calls, SUM(prompt) AS prompts
        FROM (
            SELECT SUBSTR(timestamp, 1, 10) AS day, 1 AS tool, 0 AS prompt
            FROM tool_uses WHERE timestamp IS NOT NULL
            UNION ALL
            SELECT SUBSTR(timestamp, 1, 10) AS day, 0 AS tool, 1 AS prompt
            FROM prompts WHERE timestamp IS NOT NULL
        )
        WHERE day >= DATE('now', ?)
        GROUP BY day
        ORDER BY day ASC
        """,
        (f"-{days} days",),
    )
