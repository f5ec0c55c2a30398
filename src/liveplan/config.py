"""Engine configuration.

Every tunable lives here with its default. Values can be overridden from
``LIVEPLAN_*`` environment variables through :meth:`EngineConfig.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import click
from dotenv import load_dotenv

DEFAULT_PROGRESS_PATH = Path.home() / ".liveplan" / "video-progress.json"
DEFAULT_TRUSTED_ORIGINS: tuple[str, ...] = (
    "https://www.youtube.com",
    "https://player.vimeo.com",
)


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    if raw.lower() in ("none", "off"):
        return None
    return int(raw)


def _env_csv(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for unlocking, live simulation and completion detection."""

    timezone: str = "UTC"
    unlock_hour: int = 21  # 9:00 PM viewer local time
    # Used when a unit's duration is unknown. None disables the branch so
    # only the live-window ceiling completes an unknown-length unit.
    fallback_duration_seconds: int | None = 2 * 60 * 60
    max_live_window_seconds: int = 24 * 60 * 60
    poll_interval_seconds: int = 3
    fallback_timeout_seconds: int = 30 * 60
    countdown_interval_seconds: int = 1
    near_end_seconds: int = 5
    # Tried in order; the first matching subscription gates the plan.
    plan_types: tuple[str, ...] = ("FOUR_DAY",)
    require_active_plan: bool = False
    progress_path: Path = DEFAULT_PROGRESS_PATH
    trusted_origins: tuple[str, ...] = field(default=DEFAULT_TRUSTED_ORIGINS)
    metadata_timeout_seconds: int = 10
    server_host: str = "127.0.0.1"
    server_port: int = 8787

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        """Build a config from ``LIVEPLAN_*`` variables, then apply overrides."""
        defaults = cls()
        config = cls(
            timezone=os.environ.get("LIVEPLAN_TIMEZONE", defaults.timezone),
            unlock_hour=_env_int("LIVEPLAN_UNLOCK_HOUR", defaults.unlock_hour),
            fallback_duration_seconds=_env_int(
                "LIVEPLAN_FALLBACK_DURATION", defaults.fallback_duration_seconds
            ),
            max_live_window_seconds=_env_int(
                "LIVEPLAN_MAX_LIVE_WINDOW", defaults.max_live_window_seconds
            ),
            poll_interval_seconds=_env_int("LIVEPLAN_POLL_INTERVAL", defaults.poll_interval_seconds),
            fallback_timeout_seconds=_env_int(
                "LIVEPLAN_FALLBACK_TIMEOUT", defaults.fallback_timeout_seconds
            ),
            countdown_interval_seconds=_env_int(
                "LIVEPLAN_COUNTDOWN_INTERVAL", defaults.countdown_interval_seconds
            ),
            near_end_seconds=_env_int("LIVEPLAN_NEAR_END", defaults.near_end_seconds),
            plan_types=_env_csv("LIVEPLAN_PLAN_TYPES", defaults.plan_types),
            require_active_plan=_env_flag("LIVEPLAN_REQUIRE_ACTIVE_PLAN", defaults.require_active_plan),
            progress_path=Path(os.environ.get("LIVEPLAN_PROGRESS_PATH", str(defaults.progress_path))),
            trusted_origins=_env_csv("LIVEPLAN_TRUSTED_ORIGINS", defaults.trusted_origins),
            metadata_timeout_seconds=_env_int(
                "LIVEPLAN_METADATA_TIMEOUT", defaults.metadata_timeout_seconds
            ),
            server_host=os.environ.get("LIVEPLAN_HOST", defaults.server_host),
            server_port=_env_int("LIVEPLAN_PORT", defaults.server_port),
        )
        return replace(config, **overrides) if overrides else config

    def validate(self) -> None:
        """Validate configuration."""
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise click.ClickException(f"Unknown timezone '{self.timezone}'")
        if not 0 <= self.unlock_hour <= 23:
            raise click.ClickException(
                f"Invalid unlock hour {self.unlock_hour}. Valid range: 0-23"
            )
        for name in (
            "max_live_window_seconds",
            "poll_interval_seconds",
            "fallback_timeout_seconds",
            "countdown_interval_seconds",
        ):
            if getattr(self, name) <= 0:
                raise click.ClickException(f"{name} must be positive")
        if self.fallback_duration_seconds is not None and self.fallback_duration_seconds <= 0:
            raise click.ClickException("fallback_duration_seconds must be positive or unset")
        if not self.plan_types:
            raise click.ClickException("At least one plan type is required")


def get_config(env_file: Path | None = None) -> EngineConfig:
    """Get the validated engine configuration for this process.

    A `.env` file (default: the working directory) is loaded first; variables
    already set in the environment take precedence over it.
    """
    load_dotenv(env_file or Path.cwd() / ".env")
    config = EngineConfig.from_env()
    config.validate()
    return config
