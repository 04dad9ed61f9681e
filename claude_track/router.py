"""
Hook dispatch: one decoded payload, one handler, one set of writes.

The host treats a failing hook as a problem with the turn, so `run_hook`
reports every error on stderr and still returns 0.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import sys
from datetime import datetime, timezone
from typing import IO, Any, Callable, Optional

from . import db
from .accounting import account_transcript
from .config import load_config
from .models import EventKind, HookInput
from .plans import extract_plan_text, is_plan_tool, resolve_pending_plans

logger = logging.getLogger(__name__)

RESPONSE_SUMMARY_MAX = 500

Handler = Callable[[sqlite3.Connection, HookInput, str], None]


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _to_json(value: Any) -> str:
    if value is None:
        return ""
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.debug("could not serialize tool payload: %s", e)
        return ""


def truncate_response(value: Any, limit: int = RESPONSE_SUMMARY_MAX) -> str:
    """Short summary of a tool response: strings as-is, anything else as JSON."""
    text = value if isinstance(value, str) else _to_json(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def handle_session_start(con: sqlite3.Connection, hook: HookInput, now: str) -> None:
    db.insert_session_start(
        con,
        hook.session_id or "",
        now,
        hook.reason or "",
        hook.cwd or "",
        hook.transcript_path or "",
    )


def handle_session_end(con: sqlite3.Connection, hook: HookInput, now: str) -> None:
    db.update_session_end(con, hook.session_id or "", now, hook.reason or "")


def handle_user_prompt(con: sqlite3.Connection, hook: HookInput, now: str) -> None:
    db.insert_prompt(con, hook.session_id or "", now, hook.prompt or "")


def handle_pre_tool_use(con: sqlite3.Connection, hook: HookInput, now: str) -> None:
    db.insert_tool_use(
        con,
        hook.tool_use_id,
        hook.session_id or "",
        hook.tool_name or "",
        now,
        hook.cwd or "",
        _to_json(hook.tool_input),
    )
    if is_plan_tool(hook.tool_name):
        db.insert_plan(
            con,
            hook.session_id or "",
            hook.tool_use_id,
            now,
            extract_plan_text(hook.tool_input),
        )


def handle_post_tool_use(con: sqlite3.Connection, hook: HookInput, now: str) -> None:
    summary = "" if hook.tool_response is None else truncate_response(hook.tool_response)
    db.update_tool_use_response(
        con,
        hook.tool_use_id,
        hook.session_id or "",
        hook.tool_name or "",
        now,
        hook.cwd or "",
        _to_json(hook.tool_input),
        summary,
    )


def handle_stop(con: sqlite3.Connection, hook: HookInput, now: str) -> None:
    session_id = hook.session_id or ""
    # Fall back to the path recorded at SessionStart
    transcript_path = hook.transcript_path or db.get_transcript_path(con, session_id)
    if not transcript_path:
        logger.debug("stop for %r without a transcript path", session_id)
        return
    account_transcript(con, session_id, transcript_path, now)
    resolve_pending_plans(con, session_id, transcript_path)


HANDLERS: dict[EventKind, Handler] = {
    EventKind.SESSION_START: handle_session_start,
    EventKind.SESSION_END: handle_session_end,
    EventKind.USER_PROMPT_SUBMIT: handle_user_prompt,
    EventKind.STOP: handle_stop,
    EventKind.PRE_TOOL_USE: handle_pre_tool_use,
    EventKind.POST_TOOL_USE: handle_post_tool_use,
}


def dispatch(
    raw: str | bytes, con: sqlite3.Connection, now: Optional[str] = None
) -> Optional[EventKind]:
    """
    Decode one payload and run its handler.

    Returns the kind handled, or None for an event this tracker does not
    know. Raises json.JSONDecodeError / EnvelopeError for a bad payload.
    """
    hook = HookInput.from_json(raw)
    kind = hook.kind
    if kind is None:
        logger.debug("ignoring unknown event %r", hook.event_name)
        return None
    HANDLERS[kind](con, hook, now or utc_now())
    return kind


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def configure_logging(debug: Optional[bool] = None) -> None:
    """Diagnostics go to stderr; stdout is read by the host."""
    if debug is None:
        debug = bool(os.environ.get("CLAUDE_TRACK_DEBUG"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="[claude-track] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def run_hook(stdin: Optional[IO[str]] = None, db_path: Optional[str] = None) -> int:
    """Process one hook invocation. Always returns 0."""
    try:
        raw = (stdin or sys.stdin).read()
        if db_path is None:
            db_path = load_config().db_path
        with db.connect(db_path) as con:
            kind = dispatch(raw, con)
        logger.debug("handled %s", kind.value if kind else "unknown event")
    except Exception as e:  # the hook must never fail the host's turn
        logger.error("claude-track hook: %s", e)
    return 0
