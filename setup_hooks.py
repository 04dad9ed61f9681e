#!/usr/bin/env python3
"""
Install (or remove) the claude-track hook for every Claude Code hook event.

Edits <base>/settings.json in-place (default ~/.claude/settings.json),
preserving existing settings and other tools' hooks.

Usage:
    python3 setup_hooks.py           # install
    python3 setup_hooks.py remove    # uninstall
"""

from __future__ import annotations

import json
import os
import shutil
import sys
from datetime import datetime

# Allow running from any directory
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from claude_track.config import load_config
from claude_track.models import EventKind

HOOK_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "track_hook.py")
PYTHON = sys.executable

HOOK_COMMAND = f"{PYTHON} {HOOK_SCRIPT}"

HOOK_EVENTS = [kind.value for kind in EventKind]

# Tool events take a matcher; lifecycle events ignore it
_TOOL_EVENTS = {EventKind.PRE_TOOL_USE.value, EventKind.POST_TOOL_USE.value}


def load_settings(path: str) -> dict:
    if os.path.isfile(path):
        with open(path, encoding="utf-8") as f:
            content = f.read().strip()
            if content:
                return json.loads(content)
    return {}


def save_settings(path: str, settings: dict) -> None:
    # Backup first
    if os.path.isfile(path):
        backup = path + ".bak." + datetime.now().strftime("%Y%m%d_%H%M%S")
        shutil.copy2(path, backup)
        print(f"  Backed up existing settings to {backup}")

    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings, f, indent=2)
        f.write("\n")


def _has_command(entry: dict, command: str) -> bool:
    return any(h.get("command") == command for h in entry.get("hooks", []))


def patch_settings(settings: dict, command: str = HOOK_COMMAND) -> list[str]:
    """Add `command` under every event that lacks it. Returns the events added."""
    hooks = settings.setdefault("hooks", {})
    added = []
    for event in HOOK_EVENTS:
        entries = hooks.setdefault(event, [])
        if any(_has_command(e, command) for e in entries):
            continue
        entry: dict = {"hooks": [{"type": "command", "command": command}]}
        if event in _TOOL_EVENTS:
            entry = {"matcher": "*", **entry}
        entries.append(entry)
        added.append(event)
    return added


def unpatch_settings(settings: dict, command: str = HOOK_COMMAND) -> list[str]:
    """Strip `command` from every event. Returns the events it was removed from."""
    hooks = settings.get("hooks")
    if not isinstance(hooks, dict):
        return []

    removed = []
    for event in list(hooks):
        entries = hooks[event]
        if not isinstance(entries, list):
            continue
        kept = []
        for entry in entries:
            if not _has_command(entry, command):
                kept.append(entry)
                continue
            others = [h for h in entry.get("hooks", []) if h.get("command") != command]
            if others:
                kept.append({**entry, "hooks": others})
        if kept == entries:
            continue
        removed.append(event)
        if kept:
            hooks[event] = kept
        else:
            del hooks[event]

    if removed and not hooks:
        del settings["hooks"]
    return removed


def install_hook(settings_path: str) -> None:
    print(f"Loading settings from {settings_path} ...")
    settings = load_settings(settings_path)

    added = patch_settings(settings)
    if not added:
        print("Hook is already installed for all events. Nothing to do.")
        return

    save_settings(settings_path, settings)
    print(f"Hook installed for: {', '.join(added)}")
    print(f"  Command: {HOOK_COMMAND}")
    print()
    print("Tracking starts with your next Claude Code session.")
    print("View stats anytime:  python3 dashboard.py")


def remove_hook(settings_path: str) -> None:
    print(f"Loading settings from {settings_path} ...")
    settings = load_settings(settings_path)

    removed = unpatch_settings(settings)
    if not removed:
        print("Hook is not installed. Nothing to remove.")
        return

    save_settings(settings_path, settings)
    print(f"Hook removed from: {', '.join(removed)}")
    print("The tracking database was kept.")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else "install"
    path = load_config().settings_path
    if cmd == "remove":
        remove_hook(path)
    else:
        install_hook(path)
