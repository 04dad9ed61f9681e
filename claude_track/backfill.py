"""
Import ExitPlanMode plans from transcripts written before the hook was installed.

Plans are keyed by tool_use_id, so running the backfill twice imports nothing
new. Each transcript's own tool_result blocks then settle whether the plans
in it were accepted.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass

from . import db
from .plans import resolve_pending_plans
from .transcript import find_transcripts, iter_plan_proposals

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    files: int = 0
    found: int = 0
    imported: int = 0
    skipped: int = 0
    resolved: int = 0

    def summary(self) -> str:
        lines = [
            f"Scanned {self.files} transcript files.",
            f"Found {self.found} plans: {self.imported} imported, "
            f"{self.skipped} skipped (already exist), {self.resolved} resolved.",
        ]
        if not self.files:
            lines.append("No transcript files found.")
        return "\n".join(lines)


def backfill_plans(con: sqlite3.Connection, projects_dir: str) -> BackfillResult:
    result = BackfillResult()
    transcripts = find_transcripts(projects_dir)
    result.files = len(transcripts)
    existing = db.get_all_plan_ids(con)

    for path in transcripts:
        # Transcript files are named <session-id>.jsonl
        session_id = os.path.splitext(os.path.basename(path))[0]
        imported_here = 0
        for tool_use_id, timestamp, plan_text in iter_plan_proposals(path):
            result.found += 1
            if tool_use_id in existing:
                result.skipped += 1
                continue
            db.insert_plan(con, session_id, tool_use_id, timestamp, plan_text)
            existing.add(tool_use_id)
            imported_here += 1
        result.imported += imported_here
        if imported_here:
            result.resolved += len(resolve_pending_plans(con, session_id, path))

    logger.debug("backfill: %s", result)
    return result
