"""
Resolved paths and user overrides for claude-track.

Base directory: $CLAUDE_TRACK_HOME, falling back to ~/.claude
Config file:    <base>/claude_track_config.json
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Optional

CONFIG_FILENAME = "claude_track_config.json"
DB_FILENAME = "claude-track.db"

# Keys the config file may override
OPTIONS = ("db_path", "projects_dir")


@dataclass
class Config:
    base_dir: str
    db_path: str
    settings_path: str
    projects_dir: str
    config_path: str


def base_dir() -> str:
    return os.environ.get("CLAUDE_TRACK_HOME") or os.path.expanduser("~/.claude")


def _load(path: str) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _save(path: str, cfg: dict) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(cfg, f, indent=2)


def _override(overrides: dict, key: str, default: str) -> str:
    value = overrides.get(key)
    # Hand-edited files may hold non-strings; those fall back to the default
    if isinstance(value, str) and value:
        return os.path.expanduser(value)
    return default


def load_config(base: Optional[str] = None) -> Config:
    """Build a Config rooted at `base` (or the default base dir)."""
    base = base or base_dir()
    config_path = os.path.join(base, CONFIG_FILENAME)
    overrides = _load(config_path)
    return Config(
        base_dir=base,
        db_path=_override(overrides, "db_path", os.path.join(base, DB_FILENAME)),
        settings_path=os.path.join(base, "settings.json"),
        projects_dir=_override(overrides, "projects_dir", os.path.join(base, "projects")),
        config_path=config_path,
    )


def set_option(cfg: Config, key: str, value: str) -> Config:
    """Persist an override and return the reloaded config."""
    if key not in OPTIONS:
        raise ValueError(f"Unknown option: {key!r}. Choose from {list(OPTIONS)}")
    data = _load(cfg.config_path)
    data[key] = value
    _save(cfg.config_path, data)
    return load_config(cfg.base_dir)
