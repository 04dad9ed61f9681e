"""
Read Claude Code JSONL session transcripts.

Each JSONL file lives at:
  ~/.claude/projects/<encoded-path>/<session-id>.jsonl

The host appends to the file while a session runs and may rewrite it
(history compaction), so token accounting resumes from a byte offset and
only ever consumes newline-terminated lines. A trailing chunk without a
newline may still be mid-write and is left for the next scan.
"""

from __future__ import annotations

import glob
import json
import logging
import os
from typing import Iterator, Optional

from .models import TokenUsage, json_str

logger = logging.getLogger(__name__)

PLAN_TOOL_NAME = "ExitPlanMode"


def file_length(path: str) -> int:
    """Current size of `path` in bytes, 0 if it cannot be stat'ed."""
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def _parse_line(raw: bytes) -> Optional[dict]:
    try:
        obj = json.loads(raw)
    except (ValueError, RecursionError):
        # RecursionError: valid but pathologically nested JSON
        return None
    return obj if isinstance(obj, dict) else None


def scan(path: str, start_offset: int) -> tuple[TokenUsage, int]:
    """
    Aggregate assistant token usage from `start_offset` to end of file.

    Returns (delta, new_offset). new_offset sits just past the last newline
    consumed; a missing file or an offset at/after EOF yields an empty delta
    and the offset unchanged.
    """
    delta = TokenUsage()
    try:
        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            if start_offset >= f.tell():
                return delta, start_offset
            f.seek(start_offset)
            buf = f.read()
    except OSError:
        return delta, start_offset

    new_offset = start_offset
    pos = 0
    skipped = 0
    while True:
        nl = buf.find(b"\n", pos)
        if nl == -1:
            # Partial trailing line: re-read next time
            break
        line = buf[pos:nl]
        pos = nl + 1
        new_offset = start_offset + pos
        if not line:
            continue
        entry = _parse_line(line)
        if entry is None:
            skipped += 1
            continue
        if entry.get("type") == "assistant":
            delta.add_message(entry.get("message"))

    if skipped:
        logger.debug("%s: skipped %d unparsable lines", path, skipped)
    return delta, new_offset


def iter_entries(path: str) -> Iterator[dict]:
    """Yield every JSON object line of the whole file, skipping the rest."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError:
        return
    for raw in data.split(b"\n"):
        if not raw.strip():
            continue
        entry = _parse_line(raw)
        if entry is not None:
            yield entry


def _content_blocks(entry: dict) -> list:
    message = entry.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [b for b in content if isinstance(b, dict)]


def iter_tool_results(path: str) -> Iterator[tuple[str, bool]]:
    """Yield (tool_use_id, is_error) for every tool_result block in user lines."""
    for entry in iter_entries(path):
        if entry.get("type") != "user":
            continue
        for block in _content_blocks(entry):
            if block.get("type") != "tool_result":
                continue
            tool_use_id = json_str(block, "tool_use_id")
            if tool_use_id:
                yield tool_use_id, block.get("is_error") is True


def iter_plan_proposals(path: str) -> Iterator[tuple[str, str, str]]:
    """Yield (tool_use_id, timestamp, plan_text) for ExitPlanMode calls."""
    for entry in iter_entries(path):
        if entry.get("type") != "assistant":
            continue
        timestamp = json_str(entry, "timestamp")
        for block in _content_blocks(entry):
            if block.get("type") != "tool_use" or block.get("name") != PLAN_TOOL_NAME:
                continue
            tool_use_id = json_str(block, "id")
            if tool_use_id:
                yield tool_use_id, timestamp, json_str(block.get("input"), "plan")


def find_transcripts(projects_dir: str) -> list[str]:
    """Every <projects_dir>/<project>/*.jsonl, sorted for a stable order."""
    if not os.path.isdir(projects_dir):
        return []
    return sorted(glob.glob(os.path.join(projects_dir, "*", "*.jsonl")))
