"""
test_api.py — HTTP surface end to end.

The app is built with create_app() and a services factory that wires an
in-memory database, a SimulatedSink and an AlertSource on
httpx.MockTransport. Polling is disabled; cycles are triggered through
POST /api/cycle.

Covers:
    • Status lookups (query, path, unknown location, upstream outage)
    • Location listing
    • Subscriber management and camelCase payloads
    • Cycle trigger → history endpoint
    • Test sends
    • Health probes and error envelope

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

from typing import Any, Dict

import httpx
import pytest
from fastapi.testclient import TestClient

from alert_relay.alerts.channels import SimulatedSink
from alert_relay.ingestion.alert_source import AlertSource
from alert_relay.ingestion.weather_service import WeatherService
from alert_relay.main import create_app
from alert_relay.services import build_services


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

CHERKASY_ALERT = {
    "location_title": "Черкаська область",
    "location_type": "oblast",
    "location_uid": "24",
    "alert_type": "air_raid",
}


class _Upstream:
    """Mutable fake of the alerts endpoint."""

    def __init__(self):
        self.payload: Dict[str, Any] = {"alerts": []}
        self.status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.status != 200:
            return httpx.Response(self.status)
        return httpx.Response(200, json=self.payload)


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def upstream() -> _Upstream:
    return _Upstream()


@pytest.fixture
def sink() -> SimulatedSink:
    return SimulatedSink()


@pytest.fixture
def client(upstream, sink):
    def factory():
        source = AlertSource(
            "https://alerts.test/v1/alerts/active.json", "t",
            cache_ttl=0, max_retries=0, sleep=_no_sleep,
            transport=httpx.MockTransport(upstream),
        )
        return build_services(
            database_url="sqlite+aiosqlite:///:memory:",
            source=source,
            weather=WeatherService(""),
            sink=sink,
            polling_enabled=False,
        )

    with TestClient(create_app(factory)) as test_client:
        yield test_client


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Status
# ═══════════════════════════════════════════════════════════════════════════

class TestStatus:
    def test_status_by_uid(self, client, upstream):
        upstream.payload = {"alerts": [CHERKASY_ALERT]}
        resp = client.get("/api/status", params={"uid": "151"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["location"] == "Уманський район"
        assert data["locationUid"] == "151"
        assert data["alert"] is True
        # the oblast alert is neither on the raion nor declaring it as parent
        assert data["alertCount"] == 0

    def test_status_by_name(self, client, upstream):
        upstream.payload = {"alerts": [CHERKASY_ALERT]}
        data = client.get("/api/status", params={"location": "Черкаська"}).json()
        assert data["locationUid"] == "24"
        assert data["alertCount"] == 1
        assert data["alertTypes"] == ["air_raid"]

    def test_status_unknown_location(self, client):
        resp = client.get("/api/status", params={"location": "Атлантида"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_city_status_with_countrywide(self, client, upstream):
        upstream.payload = {"alerts": [CHERKASY_ALERT]}
        data = client.get("/api/status/Черкаси обл.").json()
        assert data["uid"] == "24"
        assert data["short"] == "Черкаси обл."
        assert data["countrywide"] == {"totalAlerts": 1, "oblastCount": 1}

    def test_city_status_unknown(self, client):
        resp = client.get("/api/status/Атлантида")
        assert resp.status_code == 404
        assert resp.json()["error"]["details"]["query"] == "Атлантида"

    def test_upstream_outage_is_502(self, client, upstream):
        upstream.status = 503
        resp = client.get("/api/status", params={"uid": "24"})
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "ALERT_SOURCE_UNAVAILABLE"

    def test_locations(self, client):
        data = client.get("/api/locations").json()
        by_uid = {loc["uid"]: loc for loc in data}
        assert by_uid["151"]["parentUid"] == "24"
        assert by_uid["24"]["parentUid"] is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Subscribers
# ═══════════════════════════════════════════════════════════════════════════

class TestSubscribers:
    def test_subscribe_list_and_remove(self, client):
        resp = client.put("/api/subscribers/100", json={"locationUid": "24", "username": "olena"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["chatId"] == "100"
        assert body["locationName"] == "Черкаська область"
        assert body["lastAlertState"] is False

        listing = client.get("/api/subscribers").json()
        assert listing["count"] == 1

        assert client.get("/api/subscribers/100").status_code == 200
        assert client.delete("/api/subscribers/100").status_code == 200
        assert client.delete("/api/subscribers/100").status_code == 404
        assert client.get("/api/subscribers/100").status_code == 404

    def test_subscribe_unknown_location(self, client):
        resp = client.put("/api/subscribers/100", json={"locationUid": "99999"})
        assert resp.status_code == 400

    def test_subscribe_requires_location(self, client):
        resp = client.put("/api/subscribers/100", json={"username": "x"})
        assert resp.status_code == 422


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Cycles, history, test sends
# ═══════════════════════════════════════════════════════════════════════════

class TestOperations:
    def test_cycle_delivers_and_records_history(self, client, upstream, sink):
        client.put("/api/subscribers/100", json={"locationUid": "151"})
        upstream.payload = {"alerts": [CHERKASY_ALERT]}

        report = client.post("/api/cycle").json()
        assert report["transitions"] == 1
        assert report["delivered"] == 1
        assert len(sink.delivered_to("100")) == 1

        again = client.post("/api/cycle").json()
        assert again["transitions"] == 0

        upstream.payload = {"alerts": []}
        client.post("/api/cycle")

        history = client.get("/api/history").json()
        assert history["pagination"]["total"] == 2
        assert history["stats"]["alerts"] == 1
        assert history["stats"]["ends"] == 1
        assert history["data"][0]["alert_type"] == "END"

        ends = client.get("/api/history", params={"type": "END", "locationUid": "151"}).json()
        assert ends["pagination"]["total"] == 1

    def test_cycle_skipped_when_upstream_down(self, client, upstream):
        upstream.status = 500
        report = client.post("/api/cycle").json()
        assert report["skipped"] is True

    def test_history_invalid_type(self, client):
        resp = client.get("/api/history", params={"type": "MAYBE"})
        assert resp.status_code == 400

    def test_send_test(self, client, sink):
        client.put("/api/subscribers/100", json={"locationUid": "151"})
        resp = client.post("/api/test/send", json={"locationUid": "24", "type": "end"})
        assert resp.json() == {"sent": 1, "type": "end"}
        assert "ТЕСТ ВІДБІЙ" in sink.sent[0].text

    def test_send_test_unknown_location(self, client):
        resp = client.post("/api/test/send", json={"locationUid": "nope"})
        assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Health
# ═══════════════════════════════════════════════════════════════════════════

class TestHealth:
    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_readiness_degraded_in_simulation(self, client):
        resp = client.get("/health/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        names = {c["name"] for c in body["components"]}
        assert names == {"database", "alert_source", "scheduler", "notification_sink"}
