"""Exception hierarchy for the unlock/live engine."""

from __future__ import annotations


class LiveplanError(Exception):
    """Base class for every error raised by liveplan."""


class InvalidScheduleError(LiveplanError):
    """Subscription or day index cannot produce an unlock instant.

    This is the only error that reaches the viewer, as "content unavailable".
    """


class DurationUnavailable(LiveplanError):
    """No duration could be determined for a media reference."""


class PersistenceUnavailable(LiveplanError):
    """The durable progress file could not be read or written."""


class MalformedSignal(LiveplanError):
    """A player notification could not be parsed."""
