"""Shared fixtures for claude-track tests.

All tests use tmp_path or an in-memory database; nothing touches ~/.claude.
Adds the repo root to sys.path so imports work as they do in hook mode.
"""

import json
import os
import sqlite3
import sys

import pytest

ROOT_DIR = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, os.path.abspath(ROOT_DIR))

from claude_track import db  # noqa: E402


def assistant_line(input_tokens=0, output_tokens=0, cache_creation=0, cache_read=0,
                   model="claude-sonnet-4-5", content=None, timestamp="2025-01-01T00:00:00Z"):
    """One assistant transcript entry as a JSONL line (with trailing newline)."""
    message = {
        "model": model,
        "usage": {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cache_creation_input_tokens": cache_creation,
            "cache_read_input_tokens": cache_read,
        },
    }
    if content is not None:
        message["content"] = content
    return json.dumps({"type": "assistant", "timestamp": timestamp, "message": message}) + "\n"


def user_line(content):
    return json.dumps({"type": "user", "message": {"role": "user", "content": content}}) + "\n"


def plan_call(tool_use_id, plan="1. do it", timestamp="2025-01-01T00:00:00Z"):
    """Assistant line carrying an ExitPlanMode tool_use block."""
    return assistant_line(
        content=[{"type": "tool_use", "id": tool_use_id, "name": "ExitPlanMode",
                  "input": {"plan": plan}}],
        timestamp=timestamp,
    )


def tool_result(tool_use_id, is_error=False):
    block = {"type": "tool_result", "tool_use_id": tool_use_id, "content": "ok"}
    if is_error:
        block["is_error"] = True
    return user_line([block])


@pytest.fixture
def con():
    """In-memory database with the full schema."""
    connection = sqlite3.connect(":memory:")
    connection.row_factory = sqlite3.Row
    db.init_db(connection)
    yield connection
    connection.close()


@pytest.fixture
def transcript(tmp_path):
    """Path of an empty transcript file plus an append helper."""
    path = tmp_path / "session-1.jsonl"
    path.write_text("")

    def append(*lines):
        with open(path, "a", encoding="utf-8") as f:
            for line in lines:
                f.write(line)
        return str(path)

    append.path = str(path)
    return append


@pytest.fixture
def track_home(tmp_path, monkeypatch):
    """Point the base directory at a temp dir."""
    home = tmp_path / "claude-home"
    home.mkdir()
    monkeypatch.setenv("CLAUDE_TRACK_HOME", str(home))
    return home
