"""Records consumed and produced by the engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .errors import InvalidScheduleError


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a datetime through."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        raise InvalidScheduleError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidScheduleError(f"Invalid timestamp: {value!r}") from e


def _as_utc(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc) if dt.tzinfo is not None else dt


def parse_flag(value: Any, default: bool = True) -> bool:
    """Read a boolean sent as JSON bool, number or string (``"false"``, ``"0"``...)."""
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("false", "0", "no", "off", ""):
            return False
        return True
    return bool(value)


def parse_duration(value: Any) -> int | None:
    """Duration estimate in whole seconds, or None when absent or unusable.

    The estimate is best-effort: zero, negative and unparseable values are
    treated as unknown so the fallback duration applies.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return seconds if seconds > 0 else None


@dataclass(frozen=True)
class Subscription:
    id: str
    plan_type: str
    start_date: datetime
    end_date: datetime
    is_active: bool = True

    def __post_init__(self):
        start, end = self.start_date, self.end_date
        if (start.tzinfo is None) != (end.tzinfo is None):
            raise InvalidScheduleError(
                f"Subscription {self.id}: start and end dates mix naive and aware times"
            )
        if _as_utc(start) > _as_utc(end):
            raise InvalidScheduleError(
                f"Subscription {self.id}: startDate {start.isoformat()} is after endDate {end.isoformat()}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "Subscription":
        """Build from the collaborator's camelCase JSON (``type`` aliases ``planType``)."""
        try:
            plan_type = data.get("planType") or data["type"]
            return cls(
                id=str(data["id"]),
                plan_type=str(plan_type),
                start_date=parse_timestamp(data["startDate"]),
                end_date=parse_timestamp(data["endDate"]),
                is_active=parse_flag(data.get("isActive")),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise InvalidScheduleError(f"Malformed subscription record: {e}") from e

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "planType": self.plan_type,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "isActive": self.is_active,
        }


def find_plan_subscription(
    subscriptions: Iterable[Subscription],
    plan_types: str | Iterable[str],
    require_active: bool = False,
) -> Subscription | None:
    """First subscription matching ``plan_types``, tried in priority order.

    With ``require_active`` off, a purchased plan stays watchable after
    the billing period ends. Turning it on skips inactive records, so a
    lapsed higher-priority plan falls through to the next type.
    """
    if isinstance(plan_types, str):
        plan_types = (plan_types,)
    candidates = [s for s in subscriptions if s.is_active or not require_active]
    for plan_type in plan_types:
        for sub in candidates:
            if sub.plan_type == plan_type:
                return sub
    return None


@dataclass
class ContentUnit:
    id: str
    day_index: int
    media_ref: str
    duration_seconds: int | None = None
    title: str = ""

    def __post_init__(self):
        self.duration_seconds = parse_duration(self.duration_seconds)

    @classmethod
    def from_dict(cls, data: dict) -> "ContentUnit":
        try:
            return cls(
                id=str(data["id"]),
                day_index=int(data.get("dayIndex", data.get("day"))),
                media_ref=str(data.get("mediaRef") or data.get("videoUrl") or ""),
                duration_seconds=parse_duration(data.get("durationSeconds")),
                title=str(data.get("title", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidScheduleError(f"Malformed content unit: {e}") from e

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dayIndex": self.day_index,
            "mediaRef": self.media_ref,
            "durationSeconds": self.duration_seconds,
            "title": self.title,
        }


@dataclass(frozen=True)
class ProgressRecord:
    content_unit_id: str
    completed: bool = False
    completed_at: datetime | None = None

    @property
    def completed_at_ms(self) -> int | None:
        if self.completed_at is None:
            return None
        return int(self.completed_at.timestamp() * 1000)

    def to_json(self) -> dict:
        """Persisted shape: ``{"completed": bool, "completedAt": epoch_ms}``."""
        return {"completed": self.completed, "completedAt": self.completed_at_ms}

    @classmethod
    def from_json(cls, content_unit_id: str, data: Any) -> "ProgressRecord":
        """Parse a persisted entry. Anything unrecognizable reads as not completed."""
        if not isinstance(data, dict) or data.get("completed") is not True:
            return cls(content_unit_id)
        stamp = data.get("completedAt", data.get("timestamp"))
        completed_at = None
        if isinstance(stamp, (int, float)) and not isinstance(stamp, bool):
            try:
                completed_at = datetime.fromtimestamp(stamp / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                completed_at = None
        return cls(content_unit_id, True, completed_at)
