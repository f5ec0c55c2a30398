"""HTTP API tests through FastAPI's TestClient (mock scheduler, fixed clock)."""

import json
from dataclasses import replace
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import DAY1_UNLOCK, FakeClock
from liveplan.api import create_app
from liveplan.player import VIMEO_ORIGIN, YOUTUBE_ORIGIN

SUBSCRIPTIONS = [
    {"id": "s0", "type": "MONTHLY", "startDate": "2023-12-01T00:00:00Z", "endDate": "2024-12-01T00:00:00Z"},
    {
        "id": "s1",
        "type": "FOUR_DAY",
        "startDate": "2024-01-01T10:00:00Z",
        "endDate": "2024-01-05T10:00:00Z",
        "isActive": False,
    },
]
UNITS = [
    {"id": "d1", "dayIndex": 1, "mediaRef": "https://www.youtube.com/watch?v=abc123", "durationSeconds": 3600},
    {"id": "d2", "dayIndex": 2, "videoUrl": "https://vimeo.com/76979871"},
    {"id": "d3", "day": 3, "mediaRef": "https://u.pcloud.link/publink/show?code=x"},
]


@pytest.fixture
def api_clock():
    return FakeClock(DAY1_UNLOCK + timedelta(minutes=30))


@pytest.fixture
def client(config, api_clock):
    app = create_app(config, scheduler=MagicMock(), clock=api_clock, duration_provider=lambda _: None)
    with TestClient(app) as client:
        yield client


def open_session(client, **extra):
    body = {"subscriptions": SUBSCRIPTIONS, "units": UNITS, **extra}
    return client.post("/api/session", json=body)


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["progress_degraded"] is False

    def test_root(self, client):
        assert client.get("/").json()["name"] == "liveplan"

    def test_recent_logs(self, client):
        open_session(client)
        data = client.get("/api/logs/recent", params={"limit": 5}).json()
        assert data["count"] == len(data["logs"]) <= 5


class TestOpenSession:
    def test_picks_plan_subscription_and_first_day(self, client):
        resp = open_session(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["subscription"]["id"] == "s1"
        assert [d["unitId"] for d in data["plan"]] == ["d1", "d2", "d3"]
        assert data["current"]["unitId"] == "d1"
        assert data["current"]["state"] == "live"
        assert data["current"]["startOffset"] == 1800

    def test_explicit_unit(self, client):
        data = open_session(client, unit_id="d2").json()
        assert data["current"]["unitId"] == "d2"
        assert data["current"]["state"] == "locked"

    def test_without_plan_subscription(self, client):
        resp = client.post("/api/session", json={"subscriptions": SUBSCRIPTIONS[:1], "units": UNITS})
        data = resp.json()
        assert data["subscription"] is None
        assert all(d["state"] == "locked" for d in data["plan"])

    def test_invalid_subscription_is_content_unavailable(self, client):
        broken = [dict(SUBSCRIPTIONS[1], startDate="2024-02-01T00:00:00Z")]
        resp = client.post("/api/session", json={"subscriptions": broken, "units": UNITS})
        assert resp.status_code == 422
        assert resp.json()["detail"].startswith("content unavailable")

    def test_invalid_day_is_content_unavailable(self, client):
        units = [{"id": "d0", "dayIndex": 0, "mediaRef": "https://vimeo.com/1"}]
        resp = client.post("/api/session", json={"subscriptions": SUBSCRIPTIONS, "units": units})
        assert resp.status_code == 422

    def test_unknown_unit(self, client):
        assert open_session(client, unit_id="nope").status_code == 404

    def test_rejected_open_keeps_current_session(self, client):
        open_session(client)
        before = client.get("/api/session/state").json()

        units = [UNITS[0], {"id": "d0", "dayIndex": 0, "mediaRef": "https://vimeo.com/1"}]
        resp = client.post("/api/session", json={"subscriptions": SUBSCRIPTIONS, "units": units})
        assert resp.status_code == 422

        after = client.get("/api/session/state")
        assert after.status_code == 200
        assert after.json() == before
        assert after.json()["timerPhase"] == "armed_live"
        assert [d["unitId"] for d in client.get("/api/plan").json()["plan"]] == ["d1", "d2", "d3"]

    def test_unknown_unit_keeps_current_session(self, client):
        open_session(client)
        assert open_session(client, unit_id="nope").status_code == 404
        assert client.get("/api/session/state").json()["unitId"] == "d1"

    def test_bad_duration_estimates_are_unknown(self, client):
        units = [
            dict(UNITS[0], durationSeconds=-600),
            dict(UNITS[1], durationSeconds="unknown"),
        ]
        resp = client.post("/api/session", json={"subscriptions": SUBSCRIPTIONS, "units": units})
        assert resp.status_code == 200
        current = resp.json()["current"]
        assert current["state"] == "live"
        assert current["durationSeconds"] is None

    def test_string_active_flag(self, config, api_clock):
        subs = [
            dict(SUBSCRIPTIONS[1], id="s-lapsed", isActive="false"),
            dict(SUBSCRIPTIONS[1], id="s-active", isActive="true"),
        ]
        app = create_app(
            replace(config, require_active_plan=True),
            scheduler=MagicMock(), clock=api_clock, duration_provider=lambda _: None,
        )
        with TestClient(app) as strict:
            data = strict.post("/api/session", json={"subscriptions": subs, "units": UNITS}).json()
        assert data["subscription"]["id"] == "s-active"
        assert data["subscription"]["isActive"] is True


class TestDurationLookup:
    def test_lookup_runs_once_per_unit(self, config, api_clock):
        provider = MagicMock(return_value=None)
        app = create_app(config, scheduler=MagicMock(), clock=api_clock, duration_provider=provider)
        with TestClient(app) as client:
            open_session(client)
            client.post("/api/session/select", json={"unit_id": "d2"})
            client.post("/api/session/select", json={"unit_id": "d1"})
            client.post("/api/session/select", json={"unit_id": "d2"})
        provider.assert_called_once_with("https://vimeo.com/76979871")


class TestSessionQueries:
    def test_requires_open_session(self, client):
        assert client.get("/api/session/state").status_code == 409
        assert client.get("/api/plan").status_code == 409
        assert client.post("/api/session/complete", json={}).status_code == 409

    def test_state(self, client):
        open_session(client)
        data = client.get("/api/session/state").json()
        assert data["state"] == "live"
        assert "autoplay=1" in data["embedUrl"]

    def test_countdown(self, client, api_clock):
        api_clock.set(DAY1_UNLOCK - timedelta(hours=1))
        open_session(client)
        data = client.get("/api/session/countdown").json()
        assert data["label"] == "01:00:00"
        assert data["unlocked"] is False

    def test_select(self, client):
        open_session(client)
        data = client.post("/api/session/select", json={"unit_id": "d3"}).json()
        assert data["unitId"] == "d3"
        assert data["state"] == "locked"

    def test_select_unknown(self, client):
        open_session(client)
        assert client.post("/api/session/select", json={"unit_id": "d9"}).status_code == 404

    def test_plan(self, client):
        open_session(client)
        plan = client.get("/api/plan").json()["plan"]
        assert [d["state"] for d in plan] == ["live", "locked", "locked"]

    def test_close(self, client):
        open_session(client)
        assert client.delete("/api/session").json() == {"closed": True}
        assert client.get("/api/session/state").status_code == 409


class TestCompletion:
    def test_manual_complete_is_idempotent(self, client):
        open_session(client)
        first = client.post("/api/session/complete", json={}).json()
        second = client.post("/api/session/complete", json={"source": "player"}).json()

        assert first == {"unitId": "d1", "completed": True, "changed": True, "state": "completed"}
        assert second["changed"] is False

    def test_player_end_completes(self, client):
        open_session(client)
        data = json.dumps({"event": "onStateChange", "info": 0})
        resp = client.post("/api/player/events", json={"origin": YOUTUBE_ORIGIN, "data": data}).json()

        assert resp == {"accepted": True, "state": "ended"}
        assert client.get("/api/session/state").json()["state"] == "completed"
        progress = client.get("/api/progress").json()
        assert progress["progress"]["d1"]["completed"] is True

    def test_untrusted_origin_rejected(self, client):
        open_session(client)
        resp = client.post("/api/player/events", json={"origin": "https://evil.example", "data": {"state": "ended"}})
        assert resp.json()["accepted"] is False
        assert client.get("/api/session/state").json()["state"] == "live"

    def test_malformed_message_rejected(self, client):
        open_session(client)
        resp = client.post("/api/player/events", json={"origin": VIMEO_ORIGIN, "data": "garbage"})
        assert resp.json() == {"accepted": False, "state": None}

    def test_progress_persisted(self, client, progress_path):
        open_session(client)
        client.post("/api/session/complete", json={"unit_id": "d1"})
        assert json.loads(progress_path.read_text())["d1"]["completed"] is True
