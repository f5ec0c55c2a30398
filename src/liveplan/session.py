"""Viewing session: one subscriber watching one plan.

Binds the pure pieces (unlock clock, state evaluator, countdown) to the
stateful ones (progress store, timer coordinator, player channel) for the
unit currently on screen. Every public query re-evaluates from the store
and the clock; nothing derived is cached across ticks except the last
state, which is only used to detect transitions.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable

from .config import EngineConfig
from .countdown import CountdownPresenter, Remaining, remaining
from .embed import embed_url
from .models import ContentUnit, Subscription, parse_duration
from .player import PlayerChannel
from .progress_store import ProgressStore
from .signals import CompletionSignalAggregator, CompletionSource
from .state import DerivedState, evaluate, format_elapsed, live_start_offset
from .timers import TimerCoordinator
from .unlock_clock import format_unlock_time, unlock_instant

logger = logging.getLogger("liveplan.session")

StateListener = Callable[[str, "DerivedState | None", DerivedState], None]


def validate_schedule(
    subscription: Subscription | None, units: Iterable[ContentUnit], config: EngineConfig
) -> None:
    """Compute every unit's unlock instant once, raising on the first bad one.

    Raises:
        InvalidScheduleError: a unit's day index cannot be placed on the
            subscription's calendar.
    """
    if subscription is None:
        return
    for unit in units:
        unlock_instant(subscription.start_date, unit.day_index, config.unlock_hour, config.tzinfo)


class PlanSession:
    """Engine facade exposed to the presentation layer."""

    def __init__(
        self,
        config: EngineConfig,
        subscription: Subscription | None,
        units: Iterable[ContentUnit],
        store: ProgressStore,
        timers: TimerCoordinator,
        channel: PlayerChannel,
        clock: Callable[[], datetime] | None = None,
        duration_provider: Callable[[str], int | None] | None = None,
        on_state_change: StateListener | None = None,
    ):
        self.config = config
        self.subscription = subscription
        self.units = {u.id: u for u in sorted(units, key=lambda u: u.day_index)}
        self.store = store
        self.timers = timers
        self.channel = channel
        self.clock = clock or (lambda: datetime.now(config.tzinfo))
        self.duration_provider = duration_provider
        self.on_state_change = on_state_change
        self.aggregator = CompletionSignalAggregator(
            store, config, timers, self.clock, on_completed=self._handle_completed
        )
        self._active_id: str | None = None
        self._state: DerivedState | None = None
        self._countdown: CountdownPresenter | None = None
        self._duration_checked: set[str] = set()

    # ---- Read-only properties ----

    @property
    def active_unit(self) -> ContentUnit | None:
        return self.units.get(self._active_id) if self._active_id else None

    @property
    def state(self) -> DerivedState | None:
        """State as of the last tick (None before the first selection)."""
        return self._state

    # ---- Queries ----

    def unlock_at(self, unit_id: str) -> datetime | None:
        """Unlock instant of ``unit_id``; None when there is no plan subscription."""
        unit = self._unit(unit_id)
        if self.subscription is None:
            return None
        return unlock_instant(
            self.subscription.start_date, unit.day_index, self.config.unlock_hour, self.config.tzinfo
        )

    def derive_state(self, now: datetime | None = None, unit_id: str | None = None) -> DerivedState:
        """Evaluate a unit (default: the active one) afresh. Never arms anything."""
        unit = self._unit(unit_id or self._require_active())
        now = now or self.clock()
        unlock_at = self.unlock_at(unit.id)
        if unlock_at is None:
            return DerivedState.COMPLETED if self.store.is_completed(unit.id) else DerivedState.LOCKED
        return evaluate(
            unlock_at,
            now,
            self.store.get(unit.id),
            unit.duration_seconds,
            fallback_duration=self.config.fallback_duration_seconds,
            max_live_window=self.config.max_live_window_seconds,
        )

    def remaining_until_unlock(self, now: datetime | None = None) -> Remaining | None:
        unlock_at = self.unlock_at(self._require_active())
        if unlock_at is None:
            return None
        return remaining(unlock_at, now or self.clock())

    def needs_duration(self, unit_id: str) -> bool:
        """True until a duration is known or a lookup for it has been tried."""
        unit = self._unit(unit_id)
        return unit.duration_seconds is None and unit.id not in self._duration_checked

    def is_live_window_active(self, now: datetime | None = None) -> bool:
        return self.derive_state(now) is DerivedState.LIVE

    def snapshot(self, now: datetime | None = None) -> dict:
        """Everything the player view needs for the active unit."""
        unit = self._unit(self._require_active())
        now = now or self.clock()
        state = self.derive_state(now)
        unlock_at = self.unlock_at(unit.id)
        live = state is DerivedState.LIVE
        offset = live_start_offset(unlock_at, now) if live else 0
        left = remaining(unlock_at, now) if unlock_at is not None else None
        return {
            "unitId": unit.id,
            "dayIndex": unit.day_index,
            "state": state.value,
            "unlockAt": unlock_at.isoformat() if unlock_at else None,
            "unlockLabel": format_unlock_time(unlock_at) if unlock_at else None,
            "remaining": left.to_dict() if left else None,
            "elapsed": format_elapsed(unlock_at, now) if live else None,
            "startOffset": offset,
            "durationSeconds": unit.duration_seconds,
            "embedUrl": embed_url(unit.media_ref, live, offset) if state is not DerivedState.LOCKED else None,
            "timerPhase": self.timers.phase.value,
        }

    def plan_overview(self, now: datetime | None = None) -> list[dict]:
        """Per-day unlock status for the whole plan, ordered by day."""
        now = now or self.clock()
        days = []
        for unit in self.units.values():
            unlock_at = self.unlock_at(unit.id)
            state = self.derive_state(now, unit.id)
            days.append({
                "unitId": unit.id,
                "dayIndex": unit.day_index,
                "title": unit.title,
                "unlockAt": unlock_at.isoformat() if unlock_at else None,
                "unlockLabel": format_unlock_time(unlock_at) if unlock_at else None,
                "state": state.value,
                "unlocked": state is not DerivedState.LOCKED,
                "completed": self.store.is_completed(unit.id),
                "active": unit.id == self._active_id,
            })
        return days

    # ---- Commands ----

    def select(self, unit_id: str, now: datetime | None = None) -> DerivedState:
        """Make ``unit_id`` the unit on screen and arm its timers.

        The schedule is validated before anything changes, so an invalid
        unit leaves the previous selection untouched.
        """
        unit = self._unit(unit_id)
        self.unlock_at(unit.id)

        self.timers.activate(unit.id)
        self._active_id = unit.id
        self._state = None
        self._countdown = None
        self._resolve_duration(unit)
        return self.tick(now)

    def tick(self, now: datetime | None = None) -> DerivedState:
        """Re-evaluate the active unit and re-arm timers on a state change."""
        unit_id = self._require_active()
        now = now or self.clock()
        state = self.derive_state(now)

        if state is DerivedState.COMPLETED and not self.store.is_completed(unit_id):
            self.aggregator.mark_completed(unit_id, CompletionSource.EVALUATION)

        if state is not self._state:
            self._enter(state, now)
        return state

    def mark_completed(self, source: CompletionSource | str = CompletionSource.MANUAL,
                       unit_id: str | None = None) -> bool:
        """Finish a unit now (default: the active one). Idempotent."""
        unit = self._unit(unit_id or self._require_active())
        return self.aggregator.mark_completed(unit.id, source)

    def set_duration(self, unit_id: str, seconds: int | None) -> None:
        """Cache a late-arriving duration estimate and re-evaluate if on screen."""
        unit = self._unit(unit_id)
        unit.duration_seconds = parse_duration(seconds)
        self._duration_checked.add(unit.id)
        if unit.id == self._active_id:
            self.tick()

    def teardown(self) -> None:
        """Viewing surface closed: cancel every timer and listener."""
        self.timers.release()
        self._active_id = None
        self._state = None
        self._countdown = None

    # ---- Internal ----

    def _unit(self, unit_id: str) -> ContentUnit:
        try:
            return self.units[unit_id]
        except KeyError:
            raise KeyError(f"Unknown content unit: {unit_id}") from None

    def _require_active(self) -> str:
        if self._active_id is None:
            raise RuntimeError("No content unit selected")
        return self._active_id

    def _resolve_duration(self, unit: ContentUnit) -> None:
        if not self.needs_duration(unit.id):
            return
        self._duration_checked.add(unit.id)
        if self.duration_provider is None:
            return
        seconds = self.duration_provider(unit.media_ref)
        unit.duration_seconds = parse_duration(seconds)
        if unit.duration_seconds is None:
            logger.info("No duration for unit %s; live window uses the fallback duration", unit.id)

    def _enter(self, state: DerivedState, now: datetime) -> None:
        unit = self._unit(self._require_active())
        previous, self._state = self._state, state
        logger.info(
            "Unit %s: %s -> %s", unit.id, previous.value if previous else "none", state.value
        )

        if state is DerivedState.LOCKED:
            unlock_at = self.unlock_at(unit.id)
            if unlock_at is not None:
                self._countdown = CountdownPresenter(unlock_at, on_unlocked=self._on_unlocked)
                self._countdown.update(now)
                self.timers.arm_countdown(
                    unit.id, self._countdown_tick, self.config.countdown_interval_seconds
                )
        elif state is DerivedState.LIVE:
            self._countdown = None
            unit_id = unit.id
            unlock_at = self.unlock_at(unit_id)
            self.timers.arm_live(
                unit_id,
                on_poll=lambda: self.aggregator.poll(unit_id, unlock_at, self.units[unit_id].duration_seconds),
                poll_interval_seconds=self.config.poll_interval_seconds,
                on_fallback=lambda: self.aggregator.fallback(unit_id),
                fallback_after_seconds=self.config.fallback_timeout_seconds,
                attach_listener=lambda: self.channel.on_player_state_change(
                    lambda event: self.aggregator.on_player_event(unit_id, event)
                ),
            )
        else:
            self._countdown = None
            self.timers.disarm(unit.id)

        if self.on_state_change is not None:
            self.on_state_change(unit.id, previous, state)

    def _countdown_tick(self) -> None:
        # Only refreshes the display; the presenter's one-shot unlocked
        # signal drives the LOCKED -> LIVE transition.
        if self._countdown is not None:
            self._countdown.update(self.clock())

    def _on_unlocked(self) -> None:
        if self._active_id is None or self._state is not DerivedState.LOCKED:
            return
        logger.info("Unit %s unlocked", self._active_id)
        self.tick()

    def _handle_completed(self, unit_id: str, source: CompletionSource) -> None:
        if unit_id != self._active_id or self._state is DerivedState.COMPLETED:
            return
        previous, self._state = self._state, DerivedState.COMPLETED
        self._countdown = None
        logger.info("Unit %s: %s -> completed (%s)", unit_id,
                    previous.value if previous else "none", source.value)
        if self.on_state_change is not None:
            self.on_state_change(unit_id, previous, DerivedState.COMPLETED)
