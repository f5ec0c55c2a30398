"""Unit tests for the countdown breakdown and the one-shot unlock signal."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from liveplan.countdown import CountdownPresenter, Remaining, remaining

UNLOCK = datetime(2024, 1, 1, 21, 0, tzinfo=timezone.utc)


class TestRemaining:
    def test_breakdown(self):
        now = UNLOCK - timedelta(days=1, hours=2, minutes=3, seconds=4)
        assert remaining(UNLOCK, now) == Remaining(1, 2, 3, 4)

    def test_total_seconds(self):
        now = UNLOCK - timedelta(hours=1, seconds=1)
        assert remaining(UNLOCK, now).total_seconds == 3601

    def test_zero_at_unlock(self):
        assert remaining(UNLOCK, UNLOCK).is_zero

    def test_clamped_after_unlock(self):
        assert remaining(UNLOCK, UNLOCK + timedelta(hours=3)) == Remaining()

    def test_partial_second_rounds_up(self):
        left = remaining(UNLOCK, UNLOCK - timedelta(milliseconds=500))
        assert not left.is_zero
        assert left.seconds == 1

    def test_to_dict(self):
        now = UNLOCK - timedelta(minutes=90)
        assert remaining(UNLOCK, now).to_dict() == {"days": 0, "hours": 1, "minutes": 30, "seconds": 0}


class TestLabel:
    def test_hours_minutes_seconds(self):
        assert Remaining(0, 1, 2, 5).label() == "01:02:05"

    def test_days_prefix(self):
        assert Remaining(2, 3, 0, 9).label() == "2d 03:00:09"

    def test_zero(self):
        assert Remaining().label() == "00:00:00"


class TestCountdownPresenter:
    def test_does_not_fire_before_unlock(self):
        on_unlocked = MagicMock()
        presenter = CountdownPresenter(UNLOCK, on_unlocked)
        presenter.update(UNLOCK - timedelta(seconds=1))
        on_unlocked.assert_not_called()
        assert not presenter.fired

    def test_fires_once_on_reaching_zero(self):
        on_unlocked = MagicMock()
        presenter = CountdownPresenter(UNLOCK, on_unlocked)
        for offset in (-2, -1, 0, 1, 2):
            presenter.update(UNLOCK + timedelta(seconds=offset))
        on_unlocked.assert_called_once_with()
        assert presenter.fired

    def test_fires_immediately_when_created_after_unlock(self):
        on_unlocked = MagicMock()
        presenter = CountdownPresenter(UNLOCK, on_unlocked)
        presenter.update(UNLOCK + timedelta(minutes=5))
        on_unlocked.assert_called_once_with()

    def test_last_tracks_latest_update(self):
        presenter = CountdownPresenter(UNLOCK)
        assert presenter.last is None
        presenter.update(UNLOCK - timedelta(seconds=30))
        assert presenter.last == Remaining(seconds=30)

    def test_without_callback(self):
        presenter = CountdownPresenter(UNLOCK)
        assert presenter.update(UNLOCK).is_zero
        assert presenter.fired
