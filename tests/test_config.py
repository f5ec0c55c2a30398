"""Tests for EngineConfig defaults, environment overrides and validation."""

import os
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import click
import pytest

from liveplan.config import DEFAULT_TRUSTED_ORIGINS, EngineConfig, get_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("LIVEPLAN_"):
            monkeypatch.delenv(name)


class TestDefaults:
    def test_values(self):
        config = EngineConfig()
        assert config.unlock_hour == 21
        assert config.fallback_duration_seconds == 7200
        assert config.max_live_window_seconds == 86400
        assert config.poll_interval_seconds == 3
        assert config.fallback_timeout_seconds == 1800
        assert config.near_end_seconds == 5
        assert config.plan_types == ("FOUR_DAY",)
        assert config.require_active_plan is False
        assert config.trusted_origins == DEFAULT_TRUSTED_ORIGINS

    def test_tzinfo(self):
        assert str(EngineConfig(timezone="Europe/Berlin").tzinfo) == "Europe/Berlin"


class TestFromEnv:
    def test_no_env_matches_defaults(self):
        assert EngineConfig.from_env() == EngineConfig()

    def test_overrides_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LIVEPLAN_TIMEZONE", "America/New_York")
        monkeypatch.setenv("LIVEPLAN_UNLOCK_HOUR", "20")
        monkeypatch.setenv("LIVEPLAN_POLL_INTERVAL", "5")
        monkeypatch.setenv("LIVEPLAN_PROGRESS_PATH", str(tmp_path / "p.json"))
        monkeypatch.setenv("LIVEPLAN_PORT", "9000")

        config = EngineConfig.from_env()
        assert config.timezone == "America/New_York"
        assert config.unlock_hour == 20
        assert config.poll_interval_seconds == 5
        assert config.progress_path == Path(tmp_path / "p.json")
        assert config.server_port == 9000

    @pytest.mark.parametrize("value", ["none", "off", "NONE"])
    def test_fallback_duration_can_be_disabled(self, monkeypatch, value):
        monkeypatch.setenv("LIVEPLAN_FALLBACK_DURATION", value)
        assert EngineConfig.from_env().fallback_duration_seconds is None

    def test_trusted_origins_csv(self, monkeypatch):
        monkeypatch.setenv("LIVEPLAN_TRUSTED_ORIGINS", "https://a.example, https://b.example,")
        assert EngineConfig.from_env().trusted_origins == ("https://a.example", "https://b.example")

    def test_plan_types_in_priority_order(self, monkeypatch):
        monkeypatch.setenv("LIVEPLAN_PLAN_TYPES", "SIX_MONTH, FOUR_DAY")
        monkeypatch.setenv("LIVEPLAN_REQUIRE_ACTIVE_PLAN", "true")
        config = EngineConfig.from_env()
        assert config.plan_types == ("SIX_MONTH", "FOUR_DAY")
        assert config.require_active_plan is True

    @pytest.mark.parametrize("value", ["0", "false", "off", "no"])
    def test_require_active_plan_off(self, monkeypatch, value):
        monkeypatch.setenv("LIVEPLAN_REQUIRE_ACTIVE_PLAN", value)
        assert EngineConfig.from_env().require_active_plan is False

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("LIVEPLAN_UNLOCK_HOUR", "20")
        assert EngineConfig.from_env(unlock_hour=19).unlock_hour == 19


class TestValidate:
    def test_defaults_valid(self):
        EngineConfig().validate()

    def test_unknown_timezone(self):
        with pytest.raises(click.ClickException, match="timezone"):
            EngineConfig(timezone="Mars/Olympus_Mons").validate()

    def test_unlock_hour_range(self):
        with pytest.raises(click.ClickException, match="unlock hour"):
            EngineConfig(unlock_hour=24).validate()

    @pytest.mark.parametrize(
        "field", ["poll_interval_seconds", "fallback_timeout_seconds", "max_live_window_seconds"]
    )
    def test_positive_intervals(self, field):
        with pytest.raises(click.ClickException, match=field):
            replace(EngineConfig(), **{field: 0}).validate()

    def test_fallback_duration_positive_or_unset(self):
        EngineConfig(fallback_duration_seconds=None).validate()
        with pytest.raises(click.ClickException):
            EngineConfig(fallback_duration_seconds=0).validate()

    def test_plan_types_required(self):
        with pytest.raises(click.ClickException, match="plan type"):
            EngineConfig(plan_types=()).validate()

    def test_get_config_validates_env(self, monkeypatch):
        monkeypatch.setenv("LIVEPLAN_UNLOCK_HOUR", "30")
        with pytest.raises(click.ClickException):
            get_config()

    def test_get_config_reads_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("LIVEPLAN_UNLOCK_HOUR=20\nLIVEPLAN_TIMEZONE=Europe/Berlin\n")
        with patch.dict(os.environ):
            config = get_config(env_file)
        assert config.unlock_hour == 20
        assert config.timezone == "Europe/Berlin"

    def test_environment_beats_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("LIVEPLAN_UNLOCK_HOUR=20\n")
        monkeypatch.setenv("LIVEPLAN_UNLOCK_HOUR", "18")
        with patch.dict(os.environ):
            assert get_config(env_file).unlock_hour == 18
