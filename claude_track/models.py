"""
Typed records for hook payloads and token accounting.

Claude Code pipes one JSON object to the hook on stdin:
  {
    "hook_event_name": "PreToolUse",     # absent on very old hosts
    "session_id": "...",
    "cwd": "/path/to/project",
    "transcript_path": "/path/to/session.jsonl",
    "tool_name": "Read",
    "tool_use_id": "toolu_...",
    "tool_input": {...},
    "tool_response": "..." | {...},
    "reason": "...",
    "prompt": "...",
    ...
  }
Unknown keys are ignored.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class EnvelopeError(ValueError):
    """The hook payload is valid JSON but not a JSON object."""


class EventKind(Enum):
    SESSION_START = "SessionStart"
    SESSION_END = "SessionEnd"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    STOP = "Stop"
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"

    @classmethod
    def from_name(cls, name: Any) -> Optional["EventKind"]:
        """Map a hook_event_name to a kind.

        A missing (or null) name is PostToolUse: hosts that predate the field
        only ever fired that hook. An unrecognised name, or one that is not a
        string, returns None.
        """
        if name is None:
            return cls.POST_TOOL_USE
        if not isinstance(name, str):
            return None
        try:
            return cls(name)
        except ValueError:
            return None


def json_str(value: Any, key: str) -> str:
    """Return value[key] if value is an object and the entry is a string, else ""."""
    if isinstance(value, dict):
        item = value.get(key)
        if isinstance(item, str):
            return item
    return ""


def json_int(value: Any, key: str) -> Optional[int]:
    """Return value[key] if it is an integer (bools excluded), else None."""
    if isinstance(value, dict):
        item = value.get(key)
        if isinstance(item, int) and not isinstance(item, bool):
            return item
    return None


def _opt_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


@dataclass
class HookInput:
    # Raw JSON value; non-strings map to no kind
    event_name: Any = None
    session_id: Optional[str] = None
    cwd: Optional[str] = None
    transcript_path: Optional[str] = None
    tool_name: Optional[str] = None
    tool_use_id: Optional[str] = None
    tool_input: Any = None
    tool_response: Any = None
    reason: Optional[str] = None
    prompt: Optional[str] = None

    @property
    def kind(self) -> Optional[EventKind]:
        return EventKind.from_name(self.event_name)

    @classmethod
    def from_dict(cls, data: dict) -> "HookInput":
        return cls(
            event_name=data.get("hook_event_name"),
            session_id=_opt_str(data, "session_id"),
            cwd=_opt_str(data, "cwd"),
            transcript_path=_opt_str(data, "transcript_path"),
            tool_name=_opt_str(data, "tool_name"),
            tool_use_id=_opt_str(data, "tool_use_id"),
            tool_input=data.get("tool_input"),
            tool_response=data.get("tool_response"),
            reason=_opt_str(data, "reason"),
            prompt=_opt_str(data, "prompt"),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "HookInput":
        """Decode one payload. Raises json.JSONDecodeError or EnvelopeError."""
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise EnvelopeError(f"expected a JSON object, got {type(data).__name__}")
        return cls.from_dict(data)


@dataclass
class TokenUsage:
    """Token counts aggregated over some span of a transcript."""

    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    api_call_count: int = 0

    def add_message(self, message: Any) -> None:
        """Fold one assistant `message` object into the running totals."""
        if not isinstance(message, dict):
            return
        model = json_str(message, "model")
        if model and not self.model:
            self.model = model
        usage = message.get("usage")
        if not isinstance(usage, dict):
            return
        self.input_tokens += json_int(usage, "input_tokens") or 0
        self.output_tokens += json_int(usage, "output_tokens") or 0
        self.cache_creation_tokens += json_int(usage, "cache_creation_input_tokens") or 0
        self.cache_read_tokens += json_int(usage, "cache_read_input_tokens") or 0
        self.api_call_count += 1

    def plus(self, other: "TokenUsage") -> "TokenUsage":
        """Sum of both spans; `other`'s model wins when it has one."""
        return TokenUsage(
            model=other.model or self.model,
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens + other.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            api_call_count=self.api_call_count + other.api_call_count,
        )

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )


@dataclass
class TokenSnapshot:
    """The persisted per-session tally plus the transcript position it covers."""

    session_id: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    last_transcript_offset: int = 0
    timestamp: str = ""

