"""
test_alert_source.py — Active-alerts client.

Covers:
    • Parsing (missing fields, unknown threat types, dropped entries)
    • Freshness cache (shared snapshot, expiry, forced refresh)
    • Retry with exponential backoff and give-up behaviour
    • Client statistics

All HTTP goes through httpx.MockTransport; sleeps are recorded instead
of awaited.

Run with:
    pytest tests/test_alert_source.py -v
"""

from __future__ import annotations

import asyncio
from typing import Callable, List

import httpx
import pytest

from alert_relay.alerts.models import ThreatType
from alert_relay.directory import LocationKind
from alert_relay.ingestion.alert_source import AlertSource, parse_alert, parse_alerts


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

SAMPLE_PAYLOAD = {
    "alerts": [
        {
            "id": 1,
            "location_title": "Черкаська область",
            "location_type": "oblast",
            "location_uid": "24",
            "location_oblast_uid": 24,
            "alert_type": "air_raid",
            "started_at": "2024-05-01T10:00:00.000Z",
            "notes": None,
        },
        {
            "location_title": "Нікопольський район",
            "location_type": "raion",
            "location_uid": "110",
            "location_oblast_uid": 9,
            "alert_type": "artillery_shelling",
        },
    ],
    "meta": {"last_updated_at": "2024-05-01T10:00:05Z"},
}


class _FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_source(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    clock: Callable[[], float] | None = None,
    sleeps: List[float] | None = None,
    max_retries: int = 3,
    base_delay_ms: int = 100,
) -> AlertSource:
    async def _record_sleep(seconds: float) -> None:
        if sleeps is not None:
            sleeps.append(seconds)

    return AlertSource(
        "https://alerts.test/v1/alerts/active.json",
        "secret-token",
        cache_ttl=30,
        max_retries=max_retries,
        base_delay_ms=base_delay_ms,
        clock=clock or _FakeClock(),
        sleep=_record_sleep,
        transport=httpx.MockTransport(handler),
    )


def _ok(_request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=SAMPLE_PAYLOAD)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestParsing:
    def test_full_entry(self):
        record = parse_alert(SAMPLE_PAYLOAD["alerts"][0])
        assert record.location_id == "24"
        assert record.location_type is LocationKind.SUBDIVISION
        assert record.parent_subdivision_id == "24"
        assert record.threat_type is ThreatType.AIR_RAID
        assert record.started_at.year == 2024
        assert record.note is None

    def test_raion_tag_maps_to_district(self):
        record = parse_alert(SAMPLE_PAYLOAD["alerts"][1])
        assert record.location_type is LocationKind.DISTRICT
        assert record.parent_subdivision_id == "9"

    def test_missing_threat_defaults_to_air_raid(self):
        assert parse_alert({"location_uid": "24"}).threat_type is ThreatType.AIR_RAID

    def test_unknown_threat_is_other(self):
        record = parse_alert({"location_uid": "24", "alert_type": "meteor"})
        assert record.threat_type is ThreatType.OTHER

    def test_entry_without_location_dropped(self):
        alerts = parse_alerts({"alerts": [{"alert_type": "air_raid"}, {"location_uid": "24"}, "junk"]})
        assert [a.location_id for a in alerts] == ["24"]

    @pytest.mark.parametrize("payload", [None, [], {"meta": {}}, {"alerts": "nope"}])
    def test_malformed_payload_is_empty(self, payload):
        assert parse_alerts(payload) == ()

    def test_bad_timestamp_is_none(self):
        assert parse_alert({"location_uid": "1", "started_at": "yesterday"}).started_at is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Cache
# ═══════════════════════════════════════════════════════════════════════════

class TestCache:
    def test_fresh_snapshot_is_shared(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _ok(request)

        async def scenario():
            source = _make_source(handler)
            first = await source.fetch_active_alerts()
            second = await source.fetch_active_alerts()
            await source.close()
            return first, second

        first, second = asyncio.run(scenario())
        assert first is second
        assert len(first) == 2
        assert len(calls) == 1
        assert calls[0].headers["Authorization"] == "Bearer secret-token"

    def test_expired_snapshot_refetched(self):
        calls = []
        clock = _FakeClock()

        def handler(request):
            calls.append(request)
            return _ok(request)

        async def scenario():
            source = _make_source(handler, clock=clock)
            await source.fetch_active_alerts()
            clock.advance(31)
            await source.fetch_active_alerts()
            await source.close()

        asyncio.run(scenario())
        assert len(calls) == 2

    def test_force_refresh_bypasses_cache(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _ok(request)

        async def scenario():
            source = _make_source(handler)
            await source.fetch_active_alerts()
            await source.fetch_active_alerts(force_refresh=True)
            await source.close()

        asyncio.run(scenario())
        assert len(calls) == 2

    def test_concurrent_callers_share_one_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _ok(request)

        async def scenario():
            source = _make_source(handler)
            results = await asyncio.gather(*(source.fetch_active_alerts() for _ in range(5)))
            await source.close()
            return results

        results = asyncio.run(scenario())
        assert len(calls) == 1
        assert all(r is results[0] for r in results)


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Retry
# ═══════════════════════════════════════════════════════════════════════════

class TestRetry:
    def test_recovers_after_two_failures(self):
        sleeps: List[float] = []
        responses = iter([
            httpx.Response(502),
            httpx.Response(503),
            httpx.Response(200, json=SAMPLE_PAYLOAD),
        ])

        async def scenario():
            source = _make_source(lambda r: next(responses), sleeps=sleeps)
            alerts = await source.fetch_active_alerts()
            stats = source.stats()
            await source.close()
            return alerts, stats

        alerts, stats = asyncio.run(scenario())
        assert len(alerts) == 2
        assert sleeps == [0.1, 0.2]
        assert stats["retries"] == 2
        assert stats["requests"] == 3
        assert stats["failures"] == 0

    def test_gives_up_after_max_retries(self):
        sleeps: List[float] = []
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async def scenario():
            source = _make_source(handler, sleeps=sleeps)
            alerts = await source.fetch_active_alerts()
            stats = source.stats()
            await source.close()
            return alerts, stats

        alerts, stats = asyncio.run(scenario())
        assert alerts is None
        assert len(calls) == 4
        assert sleeps == [0.1, 0.2, 0.4]
        assert stats["failures"] == 1
        assert stats["last_error"] == "HTTP 500"

    def test_network_error_retried(self):
        sleeps: List[float] = []
        attempts = {"n": 0}

        def handler(request):
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise httpx.ConnectError("refused", request=request)
            return _ok(request)

        async def scenario():
            source = _make_source(handler, sleeps=sleeps)
            alerts = await source.fetch_active_alerts()
            await source.close()
            return alerts

        assert len(asyncio.run(scenario())) == 2
        assert sleeps == [0.1]

    def test_invalid_json_counts_as_failure(self):
        async def scenario():
            source = _make_source(
                lambda r: httpx.Response(200, content=b"<html>"), max_retries=0,
            )
            alerts = await source.fetch_active_alerts()
            stats = source.stats()
            await source.close()
            return alerts, stats

        alerts, stats = asyncio.run(scenario())
        assert alerts is None
        assert stats["last_error"].startswith("Invalid JSON")

    def test_failure_is_not_cached(self):
        responses = iter([httpx.Response(500), httpx.Response(200, json=SAMPLE_PAYLOAD)])

        async def scenario():
            source = _make_source(lambda r: next(responses), max_retries=0)
            first = await source.fetch_active_alerts()
            second = await source.fetch_active_alerts()
            await source.close()
            return first, second

        first, second = asyncio.run(scenario())
        assert first is None
        assert len(second) == 2
