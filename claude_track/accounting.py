"""
Cumulative per-session token accounting.

The token_usage row is the only state carried between Stop hooks: running
totals plus the byte offset of the transcript already counted. Each Stop
scans from that offset and folds the new span into the totals. If the file
is now shorter than the offset, the host rewrote it (e.g. compaction), so
the whole file is rescanned and its totals replace the old ones.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from typing import Optional

from . import db
from .models import TokenSnapshot, TokenUsage
from .transcript import file_length, scan

logger = logging.getLogger(__name__)


def effective_offset(prior: Optional[TokenSnapshot], length: int) -> int:
    """Where to resume scanning: the recorded offset, or 0 if the file shrank."""
    if prior is None or prior.last_transcript_offset > length:
        return 0
    return prior.last_transcript_offset


def reconcile(
    prior: Optional[TokenSnapshot],
    delta: TokenUsage,
    new_offset: int,
    start_offset: int,
    session_id: str,
    timestamp: str,
) -> TokenSnapshot:
    """Combine the stored snapshot with a freshly scanned span."""
    if prior is None:
        return TokenSnapshot(session_id, delta, new_offset, timestamp)

    if start_offset == 0 and prior.last_transcript_offset > 0:
        # Rescanned from the top: the delta is the full picture
        usage = TokenUsage(
            model=delta.model or prior.usage.model,
            input_tokens=delta.input_tokens,
            output_tokens=delta.output_tokens,
            cache_creation_tokens=delta.cache_creation_tokens,
            cache_read_tokens=delta.cache_read_tokens,
            api_call_count=delta.api_call_count,
        )
    else:
        usage = prior.usage.plus(delta)
    return TokenSnapshot(session_id, usage, new_offset, timestamp)


def account_transcript(
    con: sqlite3.Connection, session_id: str, transcript_path: str, timestamp: str
) -> Optional[TokenSnapshot]:
    """Scan what is new in the transcript and persist the updated tally.

    A transcript that does not exist leaves a stored tally untouched and
    returns it; a session with no tally yet gets an empty one at offset 0.
    """
    prior = db.get_token_snapshot(con, session_id)
    if not os.path.isfile(transcript_path):
        logger.debug("transcript %s not found; no new usage", transcript_path)
        if prior is not None:
            return prior
        empty = TokenSnapshot(session_id, TokenUsage(), 0, timestamp)
        db.upsert_token_usage(con, empty)
        return empty

    length = file_length(transcript_path)
    start = effective_offset(prior, length)
    if prior is not None and start < prior.last_transcript_offset:
        logger.debug(
            "%s shrank below offset %d (now %d bytes); rescanning",
            transcript_path, prior.last_transcript_offset, length,
        )

    delta, new_offset = scan(transcript_path, start)
    snapshot = reconcile(prior, delta, new_offset, start, session_id, timestamp)
    db.upsert_token_usage(con, snapshot)
    logger.debug(
        "session %s: +%d calls, offset %d -> %d",
        session_id, delta.api_call_count, start, new_offset,
    )
    return snapshot
