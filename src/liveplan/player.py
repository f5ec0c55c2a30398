"""Origin-filtered channel for embedded-player notifications.

Embedded players report through cross-frame messages. Only messages from
trusted origins are parsed; anything unparseable is dropped without ever
reaching a listener.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from .errors import MalformedSignal

logger = logging.getLogger("liveplan.player")

YOUTUBE_ORIGIN = "https://www.youtube.com"
VIMEO_ORIGIN = "https://player.vimeo.com"

# YouTube iframe API player states
YOUTUBE_STATES = {
    -1: "unstarted",
    0: "ended",
    1: "playing",
    2: "paused",
    3: "buffering",
    5: "cued",
}

VIMEO_EVENTS = {
    "ended": "ended",
    "finish": "ended",
    "play": "playing",
    "playing": "playing",
    "pause": "paused",
}


@dataclass(frozen=True)
class PlayerEvent:
    origin: str
    state: str | None = None
    current_time: float | None = None
    total_duration: float | None = None

    def is_end(self, near_end_seconds: float) -> bool:
        """True if the player ended or is within ``near_end_seconds`` of the end."""
        if self.state == "ended":
            return True
        if self.total_duration and self.current_time:
            return self.total_duration - self.current_time <= near_end_seconds
        return False


PlayerListener = Callable[[PlayerEvent], None]


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    raise MalformedSignal(f"Expected a number, got {value!r}")


def _youtube_event(origin: str, data: dict) -> PlayerEvent:
    info = data.get("info")
    if data.get("event") == "onStateChange":
        if not isinstance(info, int) or isinstance(info, bool):
            raise MalformedSignal(f"onStateChange without a state code: {info!r}")
        return PlayerEvent(origin, YOUTUBE_STATES.get(info))
    if isinstance(info, dict):
        code = info.get("playerState")
        state = YOUTUBE_STATES.get(code) if isinstance(code, int) else None
        return PlayerEvent(
            origin,
            state,
            _number(info.get("currentTime")),
            _number(info.get("duration")),
        )
    raise MalformedSignal(f"Unrecognized YouTube message: {data!r}")


def _vimeo_event(origin: str, data: dict) -> PlayerEvent:
    event = data.get("event")
    if not isinstance(event, str):
        raise MalformedSignal(f"Vimeo message without an event: {data!r}")
    payload = data.get("data") if isinstance(data.get("data"), dict) else {}
    return PlayerEvent(
        origin,
        VIMEO_EVENTS.get(event),
        _number(payload.get("seconds")),
        _number(payload.get("duration")),
    )


def parse_player_message(origin: str, data: Any) -> PlayerEvent:
    """Turn a raw player message into a :class:`PlayerEvent`.

    Accepts the YouTube iframe API shapes, the Vimeo player shapes and a
    generic ``{state, currentTime, totalDuration}`` shape. ``data`` may be
    a JSON string.

    Raises:
        MalformedSignal: the message cannot be interpreted.
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedSignal(f"Player message is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedSignal(f"Player message is not an object: {data!r}")

    if "state" in data:
        state = data["state"]
        if state is not None and not isinstance(state, str):
            raise MalformedSignal(f"Invalid state: {state!r}")
        return PlayerEvent(
            origin,
            state,
            _number(data.get("currentTime")),
            _number(data.get("totalDuration")),
        )
    if origin == YOUTUBE_ORIGIN:
        return _youtube_event(origin, data)
    if origin == VIMEO_ORIGIN:
        return _vimeo_event(origin, data)
    raise MalformedSignal(f"No parser for messages from {origin}")


class PlayerChannel:
    """Delivers parsed notifications from trusted origins to subscribers."""

    def __init__(self, trusted_origins: Iterable[str]):
        self.trusted_origins = frozenset(trusted_origins)
        self._listeners: list[PlayerListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def on_player_state_change(self, callback: PlayerListener) -> Callable[[], None]:
        """Subscribe ``callback``. Returns a function that detaches it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def dispatch(self, origin: str, data: Any) -> PlayerEvent | None:
        """Parse and deliver one message. Returns the event, or None if dropped."""
        if origin not in self.trusted_origins:
            logger.debug("Ignoring player message from untrusted origin %s", origin)
            return None
        try:
            event = parse_player_message(origin, data)
        except MalformedSignal as e:
            logger.debug("Dropping malformed player message: %s", e)
            return None

        # Listeners may detach themselves (completion disarms the unit)
        for listener in list(self._listeners):
            listener(event)
        return event
