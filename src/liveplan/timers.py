"""Timer coordinator: APScheduler jobs bound to the active content unit.

Every job and every player listener belongs to exactly one content unit.
Switching units cancels everything owned by the old unit before anything
is armed for the new one. Each arming also bumps a generation counter and
jobs check it before running, so a callback from a superseded arming can
never act on the wrong unit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("liveplan.timers")


class TimerPhase(str, Enum):
    IDLE = "idle"
    ARMED_LOCKED = "armed_locked"  # countdown running
    ARMED_LIVE = "armed_live"      # poll + fallback running, listener attached
    DISARMED = "disarmed"          # completed, nothing running


class TimerCoordinator:
    """Single owner of the countdown, poll and fallback jobs.

    ``scheduler`` is an APScheduler scheduler (normally ``AsyncIOScheduler``).
    Callbacks are plain functions; they are wrapped in coroutines so they
    run on the event loop thread rather than in an executor.
    """

    def __init__(self, scheduler):
        self.scheduler = scheduler
        self._unit_id: str | None = None
        self._phase = TimerPhase.IDLE
        self._generation = 0
        self._job_ids: list[str] = []
        self._detachers: list[Callable[[], None]] = []
        self.cancelled_count = 0

    # ---- Read-only properties ----

    @property
    def unit_id(self) -> str | None:
        return self._unit_id

    @property
    def phase(self) -> TimerPhase:
        return self._phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def job_ids(self) -> list[str]:
        return list(self._job_ids)

    @property
    def listener_attached(self) -> bool:
        return bool(self._detachers)

    # ---- Ownership ----

    def activate(self, unit_id: str) -> None:
        """Make ``unit_id`` the active unit, cancelling the previous unit's resources."""
        if self._unit_id is not None and self._unit_id != unit_id:
            logger.info("Switching active unit %s -> %s", self._unit_id, unit_id)
        self._cancel_resources()
        self._unit_id = unit_id
        self._phase = TimerPhase.IDLE

    def release(self) -> None:
        """Cancel everything and forget the active unit (viewing surface torn down)."""
        self._cancel_resources()
        self._unit_id = None
        self._phase = TimerPhase.IDLE

    # ---- Arming ----

    def arm_countdown(self, unit_id: str, on_tick: Callable[[], None], interval_seconds: int) -> None:
        """LOCKED: run ``on_tick`` every ``interval_seconds`` until disarmed."""
        self._require_active(unit_id)
        self._cancel_resources()
        self._add_job(unit_id, "countdown", on_tick, IntervalTrigger(seconds=interval_seconds))
        self._phase = TimerPhase.ARMED_LOCKED

    def arm_live(
        self,
        unit_id: str,
        on_poll: Callable[[], None],
        poll_interval_seconds: int,
        on_fallback: Callable[[], None],
        fallback_after_seconds: int,
        attach_listener: Callable[[], Callable[[], None]] | None = None,
    ) -> None:
        """LIVE: one poll job, one fallback timeout and (optionally) one player listener.

        ``attach_listener`` subscribes to the player channel and returns the
        matching detach function, which is called on disarm.
        """
        self._require_active(unit_id)
        self._cancel_resources()
        self._add_job(unit_id, "poll", on_poll, IntervalTrigger(seconds=poll_interval_seconds))
        run_at = datetime.now(timezone.utc) + timedelta(seconds=fallback_after_seconds)
        self._add_job(unit_id, "fallback", on_fallback, DateTrigger(run_date=run_at))
        if attach_listener is not None:
            self._detachers.append(attach_listener())
        self._phase = TimerPhase.ARMED_LIVE

    def disarm(self, unit_id: str) -> bool:
        """COMPLETED: cancel every job and listener of ``unit_id``.

        Returns False (and does nothing) if ``unit_id`` is not the active unit.
        """
        if unit_id != self._unit_id:
            return False
        self._cancel_resources()
        self._phase = TimerPhase.DISARMED
        return True

    # ---- Internal ----

    def _require_active(self, unit_id: str) -> None:
        if unit_id != self._unit_id:
            raise ValueError(f"Unit {unit_id} is not the active unit ({self._unit_id})")

    def _guarded(self, generation: int, unit_id: str, kind: str, callback: Callable[[], None]):
        async def run() -> None:
            if generation != self._generation or unit_id != self._unit_id:
                logger.debug("Skipping stale %s job for unit %s", kind, unit_id)
                return
            callback()

        return run

    def _add_job(self, unit_id: str, kind: str, callback: Callable[[], None], trigger) -> None:
        job_id = f"liveplan:{unit_id}:{kind}:{self._generation}"
        self.scheduler.add_job(
            self._guarded(self._generation, unit_id, kind, callback),
            trigger=trigger,
            id=job_id,
            name=f"{kind} ({unit_id})",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._job_ids.append(job_id)
        logger.debug("Armed %s", job_id)

    def _cancel_resources(self) -> None:
        """Remove every job and detach every listener; invalidate pending callbacks."""
        self._generation += 1
        for job_id in self._job_ids:
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                pass  # one-shot job already ran
            self.cancelled_count += 1
        self._job_ids.clear()

        for detach in self._detachers:
            detach()
            self.cancelled_count += 1
        self._detachers.clear()
