"""State evaluator. Pure logic, no I/O.

The derived state is never stored. Callers evaluate afresh on every tick
from the current time and the current progress record, which is what lets
the state heal itself after a restart.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from .models import ProgressRecord

DEFAULT_FALLBACK_DURATION_S = 2 * 60 * 60
DEFAULT_MAX_LIVE_WINDOW_S = 24 * 60 * 60


class DerivedState(str, Enum):
    LOCKED = "locked"
    LIVE = "live"
    COMPLETED = "completed"


def seconds_since(start: datetime, now: datetime) -> float:
    """Absolute seconds from ``start`` to ``now``.

    Both are normalized to UTC first: subtracting two datetimes that share
    a zone object would otherwise use wall-clock time and drift by the DST
    offset.
    """
    return (now.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds()


def evaluate(
    unlock_at: datetime,
    now: datetime,
    progress: ProgressRecord | None,
    duration_estimate: int | None,
    *,
    fallback_duration: int | None = DEFAULT_FALLBACK_DURATION_S,
    max_live_window: int = DEFAULT_MAX_LIVE_WINDOW_S,
) -> DerivedState:
    """Derive LOCKED / LIVE / COMPLETED for one content unit.

    A persisted completion wins over every time check. The live window
    ends when the elapsed time reaches the known duration (or the fallback
    duration when unknown), and never outlasts ``max_live_window``.
    """
    if progress is not None and progress.completed:
        return DerivedState.COMPLETED

    elapsed = seconds_since(unlock_at, now)
    if elapsed < 0:
        return DerivedState.LOCKED

    effective_duration = duration_estimate if duration_estimate and duration_estimate > 0 else fallback_duration
    if effective_duration is not None and elapsed >= effective_duration:
        return DerivedState.COMPLETED

    if elapsed >= max_live_window:
        return DerivedState.COMPLETED

    return DerivedState.LIVE


def live_start_offset(unlock_at: datetime, now: datetime) -> int:
    """Seconds into the media a viewer joining the live broadcast starts at."""
    elapsed = seconds_since(unlock_at, now)
    return int(elapsed) if elapsed > 0 else 0


def format_elapsed(unlock_at: datetime, now: datetime) -> str:
    """Running 'on air for' label: 'Starting now', '42s', '3m 5s' or '1h 2m 3s'."""
    elapsed = int(seconds_since(unlock_at, now))
    if elapsed <= 0:
        return "Starting now"

    hours = elapsed // 3600
    minutes = (elapsed % 3600) // 60
    seconds = elapsed % 60
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
