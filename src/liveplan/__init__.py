"""liveplan: time-gated unlock and live-simulation playback for multi-day video plans.

Each day of a plan unlocks at a fixed evening hour in the viewer's zone,
plays as a simulated live broadcast, then stays available as a normal
recording once completed.
"""

from .config import EngineConfig, get_config
from .countdown import CountdownPresenter, Remaining, remaining
from .errors import (
    DurationUnavailable,
    InvalidScheduleError,
    LiveplanError,
    MalformedSignal,
    PersistenceUnavailable,
)
from .models import ContentUnit, ProgressRecord, Subscription, find_plan_subscription
from .player import PlayerChannel, PlayerEvent, parse_player_message
from .progress_store import ProgressStore
from .session import PlanSession, validate_schedule
from .signals import CompletionSignalAggregator, CompletionSource
from .state import DerivedState, evaluate
from .timers import TimerCoordinator, TimerPhase
from .unlock_clock import format_unlock_time, unlock_instant

__version__ = "0.1.0"

__all__ = [
    "CompletionSignalAggregator",
    "CompletionSource",
    "ContentUnit",
    "CountdownPresenter",
    "DerivedState",
    "DurationUnavailable",
    "EngineConfig",
    "InvalidScheduleError",
    "LiveplanError",
    "MalformedSignal",
    "PersistenceUnavailable",
    "PlanSession",
    "PlayerChannel",
    "PlayerEvent",
    "ProgressRecord",
    "ProgressStore",
    "Remaining",
    "Subscription",
    "TimerCoordinator",
    "TimerPhase",
    "evaluate",
    "find_plan_subscription",
    "format_unlock_time",
    "get_config",
    "parse_player_message",
    "remaining",
    "unlock_instant",
    "validate_schedule",
]
