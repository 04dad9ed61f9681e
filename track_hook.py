#!/usr/bin/env python3
"""
Hook entry point, registered for every Claude Code hook event by setup_hooks.py.

Claude Code pipes a JSON payload to stdin:
  {
    "hook_event_name": "Stop",
    "session_id": "...",
    "transcript_path": "/path/to/session.jsonl",
    ...
  }

The event is recorded in the SQLite database. This script always exits 0;
problems are reported on stderr so Claude Code is never blocked.
"""

from __future__ import annotations

import os
import sys

# Allow running from any directory
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from claude_track.router import configure_logging, run_hook


def main() -> None:
    configure_logging()
    sys.exit(run_hook(sys.stdin))


if __name__ == "__main__":
    main()
