"""Completion signal aggregator.

Several independent signals can decide that a unit is finished: the
player reporting its end, the periodic elapsed-time poll, the fallback
timeout, a manual finish, or an evaluation that infers completion from
elapsed time. They all go through :meth:`CompletionSignalAggregator.mark_completed`,
the only code that writes to the progress store. The first call wins;
later ones are no-ops.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .config import EngineConfig
from .models import ProgressRecord
from .progress_store import ProgressStore
from .state import DerivedState, evaluate, seconds_since

if TYPE_CHECKING:
    from .player import PlayerEvent
    from .timers import TimerCoordinator

logger = logging.getLogger("liveplan.signals")


class CompletionSource(str, Enum):
    PLAYER = "player"
    POLL = "poll"
    FALLBACK = "fallback"
    MANUAL = "manual"
    EVALUATION = "evaluation"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CompletionSignalAggregator:
    """Funnels every completion signal into one idempotent write."""

    def __init__(
        self,
        store: ProgressStore,
        config: EngineConfig | None = None,
        timers: TimerCoordinator | None = None,
        clock: Callable[[], datetime] = _utc_now,
        on_completed: Callable[[str, CompletionSource], None] | None = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.timers = timers
        self.clock = clock
        self.on_completed = on_completed

    def mark_completed(self, unit_id: str, source: CompletionSource | str = CompletionSource.MANUAL) -> bool:
        """Record ``unit_id`` as completed. Returns True only for the call that wrote.

        Also cancels every pending timer and the player listener of the unit.
        """
        source = CompletionSource(source)
        if self.store.is_completed(unit_id):
            logger.debug("Unit %s already completed; ignoring %s signal", unit_id, source.value)
            return False

        self.store.put(ProgressRecord(unit_id, completed=True, completed_at=self.clock()))
        logger.info("Unit %s completed (signal: %s)", unit_id, source.value)

        if self.timers is not None:
            self.timers.disarm(unit_id)
        if self.on_completed is not None:
            self.on_completed(unit_id, source)
        return True

    def on_player_event(self, unit_id: str, event: PlayerEvent) -> bool:
        """Player signal: 'ended', or playback within a few seconds of the end."""
        if not event.is_end(self.config.near_end_seconds):
            return False
        return self.mark_completed(unit_id, CompletionSource.PLAYER)

    def poll(self, unit_id: str, unlock_at: datetime, duration_estimate: int | None) -> bool:
        """Elapsed-time signal: complete once time alone says the broadcast is over."""
        now = self.clock()
        state = evaluate(
            unlock_at,
            now,
            self.store.get(unit_id),
            duration_estimate,
            fallback_duration=self.config.fallback_duration_seconds,
            max_live_window=self.config.max_live_window_seconds,
        )
        if state is not DerivedState.COMPLETED or self.store.is_completed(unit_id):
            return False
        logger.debug(
            "Poll for unit %s: %.0fs since unlock, duration %s",
            unit_id, seconds_since(unlock_at, now), duration_estimate,
        )
        return self.mark_completed(unit_id, CompletionSource.POLL)

    def fallback(self, unit_id: str) -> bool:
        """Timeout signal: the player never reported, force completion."""
        logger.info("Fallback timeout reached for unit %s", unit_id)
        return self.mark_completed(unit_id, CompletionSource.FALLBACK)
