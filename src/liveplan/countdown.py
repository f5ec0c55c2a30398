"""Countdown to unlock, with a one-shot 'unlocked' signal."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable

from .state import seconds_since

logger = logging.getLogger("liveplan.countdown")


@dataclass(frozen=True)
class Remaining:
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    @property
    def is_zero(self) -> bool:
        return self.days == self.hours == self.minutes == self.seconds == 0

    @property
    def total_seconds(self) -> int:
        return ((self.days * 24 + self.hours) * 60 + self.minutes) * 60 + self.seconds

    def to_dict(self) -> dict:
        return asdict(self)

    def label(self) -> str:
        """Compact 'HH:MM:SS' label, prefixed with days when there are any."""
        clock = f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}"
        return f"{self.days}d {clock}" if self.days > 0 else clock


def remaining(unlock_at: datetime, now: datetime) -> Remaining:
    """Time left until ``unlock_at``, clamped at zero.

    Partial seconds round up, so the breakdown only reads zero once
    ``now`` has actually reached the unlock instant.
    """
    left = math.ceil(-seconds_since(unlock_at, now))
    if left <= 0:
        return Remaining()
    return Remaining(
        days=left // 86400,
        hours=(left // 3600) % 24,
        minutes=(left // 60) % 60,
        seconds=left % 60,
    )


class CountdownPresenter:
    """Tracks one unit's countdown and reports the unlock exactly once."""

    def __init__(self, unlock_at: datetime, on_unlocked: Callable[[], None] | None = None):
        self.unlock_at = unlock_at
        self._on_unlocked = on_unlocked
        self._fired = False
        self.last: Remaining | None = None

    @property
    def fired(self) -> bool:
        return self._fired

    def update(self, now: datetime) -> Remaining:
        """Recompute the breakdown; on first reaching zero, signal the unlock."""
        self.last = remaining(self.unlock_at, now)
        if self.last.is_zero and not self._fired:
            self._fired = True
            logger.info("Countdown reached zero for unlock at %s", self.unlock_at.isoformat())
            if self._on_unlocked is not None:
                self._on_unlocked()
        return self.last
