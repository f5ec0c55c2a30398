#!/usr/bin/env python3
"""liveplan CLI.

Inspect unlock schedules and local progress, or run the HTTP server.

Usage:
    liveplan status --start 2024-01-01T10:00:00 --day 2      # State of one day right now
    liveplan status --start 2024-01-01 --day 1 --at 2024-01-01T21:30:00
    liveplan plan subscriptions.json units.json              # Whole plan overview
    liveplan complete day-3                                  # Mark a unit finished
    liveplan progress                                        # Stored completion records
    liveplan serve --port 8787                               # Run the API server
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import click
from apscheduler.schedulers.background import BackgroundScheduler
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .config import EngineConfig, get_config
from .countdown import remaining
from .errors import InvalidScheduleError
from .logs import setup_logging
from .models import ContentUnit, Subscription, find_plan_subscription, parse_timestamp
from .player import PlayerChannel
from .progress_store import ProgressStore
from .session import PlanSession
from .signals import CompletionSignalAggregator, CompletionSource
from .state import DerivedState, evaluate, format_elapsed
from .timers import TimerCoordinator
from .unlock_clock import format_unlock_time, to_viewer_time, unlock_instant

console = Console()


def _state_style(state: str) -> str:
    """Get Rich style for a derived state."""
    styles = {
        "locked": "yellow",
        "live": "bold red",
        "completed": "green",
    }
    return styles.get(state, "white")


def _parse_moment(value: str | None, config: EngineConfig) -> datetime:
    """Parse a CLI timestamp; naive values are wall time in the configured zone."""
    if value is None:
        return datetime.now(config.tzinfo)
    try:
        return to_viewer_time(parse_timestamp(value), config.tzinfo)
    except InvalidScheduleError as e:
        raise click.BadParameter(str(e)) from e


def _load_json(path: str):
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}") from e


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--timezone", "tz_name", default=None, help="Viewer timezone (IANA name).")
@click.option(
    "--progress-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Progress JSON file (default: ~/.liveplan/video-progress.json).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx, tz_name, progress_file, verbose):
    """liveplan - time-gated unlock and live playback engine."""
    overrides = {}
    if tz_name:
        overrides["timezone"] = tz_name
    if progress_file:
        overrides["progress_path"] = Path(progress_file)

    config = get_config()
    if overrides:
        config = replace(config, **overrides)
        config.validate()

    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format="%(name)s: %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.option("--start", "start", required=True, help="Subscription start date (ISO-8601).")
@click.option("--day", "day", type=int, required=True, help="Day index within the plan (1-based).")
@click.option("--at", "at", default=None, help="Evaluate at this instant instead of now.")
@click.option("--duration", type=int, default=None, help="Known media duration in seconds.")
@click.option("--unit", "unit_id", default=None, help="Content unit id to read progress for.")
@click.pass_context
def status(ctx, start, day, at, duration, unit_id):
    """Show the derived state of a single plan day."""
    config: EngineConfig = ctx.obj["config"]
    now = _parse_moment(at, config)
    try:
        unlock_at = unlock_instant(parse_timestamp(start), day, config.unlock_hour, config.tzinfo)
    except InvalidScheduleError as e:
        raise click.ClickException(f"Content unavailable: {e}") from e

    progress = ProgressStore(config.progress_path).get(unit_id) if unit_id else None
    state = evaluate(
        unlock_at,
        now,
        progress,
        duration,
        fallback_duration=config.fallback_duration_seconds,
        max_live_window=config.max_live_window_seconds,
    )

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Day", str(day))
    table.add_row("Unlocks", f"{unlock_at.isoformat()} ({format_unlock_time(unlock_at)})")
    table.add_row("State", Text(state.value.upper(), style=_state_style(state.value)))
    if state is DerivedState.LOCKED:
        table.add_row("Countdown", remaining(unlock_at, now).label())
    elif state is DerivedState.LIVE:
        table.add_row("On air", format_elapsed(unlock_at, now))
    console.print(table)


@cli.command()
@click.argument("subscriptions_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("units_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--at", "at", default=None, help="Evaluate at this instant instead of now.")
@click.pass_context
def plan(ctx, subscriptions_file, units_file, at):
    """Show unlock status for every day of a plan."""
    config: EngineConfig = ctx.obj["config"]
    now = _parse_moment(at, config)

    raw_subs = _load_json(subscriptions_file)
    raw_units = _load_json(units_file)
    if isinstance(raw_subs, dict):
        raw_subs = [raw_subs]
    try:
        subscriptions = [Subscription.from_dict(s) for s in raw_subs]
        units = [ContentUnit.from_dict(u) for u in raw_units]
    except InvalidScheduleError as e:
        raise click.ClickException(str(e)) from e

    subscription = find_plan_subscription(
        subscriptions, config.plan_types, require_active=config.require_active_plan
    )
    if subscription is None:
        console.print(
            f"[yellow]No {'/'.join(config.plan_types)} subscription found; every day stays locked.[/yellow]"
        )

    # Read-only queries never arm timers, so the scheduler is never started
    session = PlanSession(
        config,
        subscription,
        units,
        ProgressStore(config.progress_path),
        TimerCoordinator(BackgroundScheduler()),
        PlayerChannel(config.trusted_origins),
        clock=lambda: now,
    )
    try:
        days = session.plan_overview(now)
    except InvalidScheduleError as e:
        raise click.ClickException(f"Content unavailable: {e}") from e

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Day", justify="right")
    table.add_column("Unit")
    table.add_column("Title")
    table.add_column("Unlocks")
    table.add_column("State")
    for entry in days:
        unlock = f"{entry['unlockAt'][:10]} {entry['unlockLabel']}" if entry["unlockAt"] else "-"
        table.add_row(
            str(entry["dayIndex"]),
            entry["unitId"],
            entry["title"],
            unlock,
            Text(entry["state"], style=_state_style(entry["state"])),
        )
    console.print(table)


@cli.command()
@click.argument("unit_id")
@click.pass_context
def complete(ctx, unit_id):
    """Mark a content unit as completed."""
    config: EngineConfig = ctx.obj["config"]
    store = ProgressStore(config.progress_path)
    changed = CompletionSignalAggregator(store, config).mark_completed(unit_id, CompletionSource.MANUAL)
    if store.degraded:
        console.print(f"[red]Could not write {config.progress_path}; progress was not saved.[/red]")
        ctx.exit(1)
    if changed:
        console.print(f"[green]{unit_id} marked as completed.[/green]")
    else:
        console.print(f"[dim]{unit_id} was already completed.[/dim]")


@cli.command()
@click.pass_context
def progress(ctx):
    """List stored completion records."""
    config: EngineConfig = ctx.obj["config"]
    store = ProgressStore(config.progress_path)
    records = store.all()
    if not records:
        console.print("[yellow]No progress recorded.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Unit")
    table.add_column("Completed")
    table.add_column("At", style="dim")
    for unit_id, record in sorted(records.items()):
        at = record.completed_at.astimezone(config.tzinfo).strftime("%Y-%m-%d %I:%M %p") if record.completed_at else ""
        table.add_row(unit_id, "yes" if record.completed else "no", at)
    console.print(table)
    console.print(f"\n[dim]Progress file: {config.progress_path}[/dim]")


@cli.command()
@click.option("--host", default=None, help="Bind address (default from LIVEPLAN_HOST).")
@click.option("--port", type=int, default=None, help="Port (default from LIVEPLAN_PORT).")
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API server."""
    import uvicorn

    from .api import create_app

    config: EngineConfig = ctx.obj["config"]
    setup_logging()
    uvicorn.run(
        create_app(config),
        host=host or config.server_host,
        port=port or config.server_port,
    )


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
