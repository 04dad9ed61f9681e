"""
Estimated API prices by model family (USD per million tokens).
These are list prices; subscription plans are not billed this way.
"""

from __future__ import annotations

from typing import Mapping

# fmt: off
PRICING: dict[str, dict[str, float]] = {
    "claude-opus-4":     {"input": 15.00, "output": 75.00, "cache_write": 18.75, "cache_read": 1.50},
    "claude-sonnet-4":   {"input": 3.00,  "output": 15.00, "cache_write": 3.75,  "cache_read": 0.30},
    "claude-haiku-4":    {"input": 1.00,  "output": 5.00,  "cache_write": 1.25,  "cache_read": 0.10},
    "claude-3-7-sonnet": {"input": 3.00,  "output": 15.00, "cache_write": 3.75,  "cache_read": 0.30},
    "claude-3-5-sonnet": {"input": 3.00,  "output": 15.00, "cache_write": 3.75,  "cache_read": 0.30},
    "claude-3-5-haiku":  {"input": 0.80,  "output": 4.00,  "cache_write": 1.00,  "cache_read": 0.08},
    "claude-3-opus":     {"input": 15.00, "output": 75.00, "cache_write": 18.75, "cache_read": 1.50},
}
# fmt: on

_DEFAULT = PRICING["claude-sonnet-4"]


def get_pricing(model: str) -> dict[str, float]:
    """Longest family prefix that matches `model`, else Sonnet rates."""
    matches = [key for key in PRICING if model.startswith(key)]
    if not matches:
        return _DEFAULT
    return PRICING[max(matches, key=len)]


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    cache_creation_tokens: int,
    cache_read_tokens: int,
) -> float:
    p = get_pricing(model)
    return (
        input_tokens * p["input"]
        + output_tokens * p["output"]
        + cache_creation_tokens * p["cache_write"]
        + cache_read_tokens * p["cache_read"]
    ) / 1_000_000


def row_cost(row: Mapping) -> float:
    """Cost of a query row carrying model and the four token columns."""
    return calculate_cost(
        row.get("model") or "",
        row.get("input_tokens") or 0,
        row.get("output_tokens") or 0,
        row.get("cache_creation_tokens") or 0,
        row.get("cache_read_tokens") or 0,
    )
