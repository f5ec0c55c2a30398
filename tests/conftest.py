"""Shared fixtures: a settable clock, a mock scheduler and a sample plan."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from liveplan.config import EngineConfig
from liveplan.models import ContentUnit, Subscription

START = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
DAY1_UNLOCK = datetime(2024, 1, 1, 21, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def run(coro):
    """Run an async function in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def job_funcs(scheduler: MagicMock) -> dict:
    """Job id -> callable for every add_job call made on a mock scheduler."""
    return {c.kwargs["id"]: c.args[0] for c in scheduler.add_job.call_args_list}


def latest_job(scheduler: MagicMock, kind: str):
    """Most recently armed job callable of the given kind (countdown, poll, fallback)."""
    matches = [func for job_id, func in job_funcs(scheduler).items() if f":{kind}:" in job_id]
    assert matches, f"no {kind} job armed"
    return matches[-1]


@pytest.fixture
def scheduler():
    scheduler = MagicMock()
    scheduler.add_job = MagicMock()
    scheduler.remove_job = MagicMock()
    return scheduler


@pytest.fixture
def progress_path(tmp_path):
    return tmp_path / "video-progress.json"


@pytest.fixture
def config(progress_path):
    return EngineConfig(progress_path=progress_path)


@pytest.fixture
def clock():
    return FakeClock(DAY1_UNLOCK - timedelta(hours=1))


@pytest.fixture
def subscription():
    return Subscription(
        id="sub-1",
        plan_type="FOUR_DAY",
        start_date=START,
        end_date=START + timedelta(days=4),
    )


@pytest.fixture
def units():
    return [
        ContentUnit("d1", 1, "https://www.youtube.com/watch?v=abc123", duration_seconds=3600, title="Day 1"),
        ContentUnit("d2", 2, "https://vimeo.com/76979871", title="Day 2"),
        ContentUnit("d3", 3, "https://u.pcloud.link/publink/show?code=xyz", title="Day 3"),
    ]
