from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional


def now_ts() -> int:
    return int(time.time())


def epoch_to_iso(seconds: float) -> str:
    """Render epoch seconds the way account records store timestamps.

    ISO-8601, UTC, millisecond precision, ``Z`` suffix.
    """
    dt = datetime.fromtimestamp(float(seconds), tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    return epoch_to_iso(time.time())


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
