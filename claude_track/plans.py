"""
Plan proposals (ExitPlanMode) and their outcome.

A plan is recorded as pending when the agent calls ExitPlanMode. The user's
answer shows up later in the transcript as the tool_result for that call:
an error result means the plan was rejected, anything else means accepted.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable

from . import db
from .models import json_str
from .transcript import PLAN_TOOL_NAME, iter_tool_results

logger = logging.getLogger(__name__)


def is_plan_tool(tool_name: str | None) -> bool:
    return tool_name == PLAN_TOOL_NAME


def extract_plan_text(tool_input: Any) -> str:
    return json_str(tool_input, "plan")


def find_resolutions(transcript_path: str, pending: Iterable[str]) -> dict[str, bool]:
    """Map each pending tool_use_id that has a tool_result to accepted/rejected.

    Reads the whole file: the result may sit before the span already counted
    for tokens.
    """
    wanted = set(pending)
    found: dict[str, bool] = {}
    if not wanted:
        return found
    for tool_use_id, is_error in iter_tool_results(transcript_path):
        if tool_use_id in wanted:
            found.setdefault(tool_use_id, not is_error)
    return found


def resolve_pending_plans(
    con: sqlite3.Connection, session_id: str, transcript_path: str
) -> dict[str, bool]:
    """Resolve this session's pending plans from the transcript.

    Returns the resolutions applied. Plans without a result stay pending for
    the next Stop.
    """
    pending = db.get_pending_plan_ids(con, session_id)
    if not pending:
        return {}
    resolved = find_resolutions(transcript_path, pending)
    for tool_use_id, accepted in resolved.items():
        db.update_plan_accepted(con, tool_use_id, accepted)
        logger.debug("plan %s %s", tool_use_id, "accepted" if accepted else "rejected")
    return resolved
