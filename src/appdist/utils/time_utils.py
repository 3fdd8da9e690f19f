"""Time helpers for run identifiers and stage durations."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return current timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def run_stamp(moment: datetime | None = None) -> str:
    """Compact UTC stamp used as a sortable run-id prefix."""

    return (moment or now_utc()).strftime("%Y%m%dT%H%M%SZ")


def elapsed_seconds(started_mono: float) -> float:
    """Seconds elapsed since a ``time.monotonic()`` reading, rounded to ms."""

    return round(time.monotonic() - started_mono, 3)
