"""Timestamp normalization shared by every backend.

Transcripts mix epoch seconds, epoch milliseconds (as numbers or strings)
and RFC 3339 strings. Everything is normalized to epoch milliseconds.
"""

import math
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Values below this magnitude are taken as seconds.
EPOCH_MS_THRESHOLD = 1_000_000_000_000


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_epoch(raw: int) -> int:
    """Convert an epoch value of unknown unit to milliseconds."""
    if abs(raw) < EPOCH_MS_THRESHOLD:
        return raw * 1000
    return raw


def parse_timestamp_ms(value: Any) -> Optional[int]:
    """Parse any timestamp encoding found in a transcript, or None."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return normalize_epoch(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return normalize_epoch(int(value))

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    try:
        return normalize_epoch(int(text))
    except ValueError:
        pass

    return _parse_rfc3339_ms(text)


def _parse_rfc3339_ms(value: str) -> Optional[int]:
    """Parse an RFC 3339 / ISO 8601 datetime string to epoch ms."""
    try:
        if value.endswith(("Z", "z")):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def file_mtime_ms(path: Path) -> Optional[int]:
    try:
        return int(os.stat(path).st_mtime * 1000)
    except OSError:
        return None
