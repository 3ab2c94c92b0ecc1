"""
alert_source.py — alerts.in.ua active-alerts client.

Fetches ``GET /v1/alerts/active.json`` (bearer token) and maps the JSON
into immutable AlertRecord tuples.

Capabilities:
    - 30 s freshness window so both periodic tasks share one upstream request
    - Retry with exponential backoff on network errors and non-2xx responses
    - Strict parsing step: nothing untyped leaves this module
    - Request / cache-hit / failure counters for the health report

Retry Policy
============
    attempt 0   immediate
    retry 1     wait base * 2^0
    retry 2     wait base * 2^1
    ...
    retry N     wait base * 2^(N-1)      (N = max_retries)

Every retry is logged with its number and computed delay. Exhausting the
retries returns ``None``: the caller skips the cycle and keeps its prior
state. The adapter does not fall back to stale data; a stale snapshot
would be diffed as if it were current.

Parsing
=======
    alerts field missing / not a list   → empty tuple
    entry without location_uid          → dropped
    alert_type missing                  → AIR_RAID
    alert_type unknown                  → OTHER
    started_at unparseable              → None
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from alert_relay.alerts.models import AlertRecord, ThreatType
from alert_relay.core.cache import Clock, TTLCache
from alert_relay.core.config import settings
from alert_relay.directory import LocationKind

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

AlertSnapshot = Tuple[AlertRecord, ...]

_CACHE_KEY = "active_alerts"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_alert(raw: Any) -> Optional[AlertRecord]:
    """Map one upstream entry to an AlertRecord, or None if it has no location."""
    if not isinstance(raw, dict):
        return None
    location_id = _optional_str(raw.get("location_uid"))
    if location_id is None:
        return None
    return AlertRecord(
        location_id=location_id,
        location_type=LocationKind.from_upstream(raw.get("location_type")),
        parent_subdivision_id=_optional_str(raw.get("location_oblast_uid")),
        threat_type=ThreatType.from_upstream(raw.get("alert_type")),
        location_title=_optional_str(raw.get("location_title")),
        note=_optional_str(raw.get("notes")),
        started_at=_parse_timestamp(raw.get("started_at")),
    )


def parse_alerts(payload: Any) -> AlertSnapshot:
    """Map the upstream JSON body to a tuple of AlertRecords."""
    if not isinstance(payload, dict):
        logger.warning("Alert payload is not an object (%s)", type(payload).__name__)
        return ()
    entries = payload.get("alerts")
    if not isinstance(entries, list):
        logger.warning("Alert payload has no 'alerts' list")
        return ()

    records = []
    dropped = 0
    for raw in entries:
        record = parse_alert(raw)
        if record is None:
            dropped += 1
            continue
        records.append(record)

    if dropped:
        logger.debug("Dropped %d alert entries without a location", dropped)
    return tuple(records)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class AlertSource:
    """
    Caching, retrying client for the active-alerts endpoint.

    Parameters
    ----------
    url, token : str
        Endpoint and bearer token (default: settings).
    cache_ttl : float
        Freshness window in seconds.
    max_retries : int
        Retries after the first attempt.
    base_delay_ms : int
        Backoff base; retry ``n`` (0-based) waits ``base * 2**n`` ms.
    clock, sleep
        Injectable for tests.
    transport : httpx.AsyncBaseTransport | None
        Injectable for tests (``httpx.MockTransport``).

    Usage::

        source = AlertSource()
        alerts = await source.fetch_active_alerts()
        if alerts is None:
            ...  # skip this cycle
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        cache_ttl: Optional[float] = None,
        max_retries: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        timeout: Optional[float] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.ALERTS_API_URL
        self._token = token if token is not None else settings.ALERTS_API_TOKEN
        self.max_retries = settings.ALERT_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay_ms = (
            settings.ALERT_RETRY_BASE_DELAY_MS if base_delay_ms is None else base_delay_ms
        )
        self.timeout = settings.ALERT_FETCH_TIMEOUT_SECONDS if timeout is None else timeout
        self._cache: TTLCache[AlertSnapshot] = TTLCache(
            settings.ALERT_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl,
            clock=clock,
        )
        self._sleep = sleep
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self._fetch_lock = asyncio.Lock()

        # Stats
        self._request_count = 0
        self._retry_count = 0
        self._failures = 0
        self._last_success_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def invalidate(self) -> None:
        self._cache.invalidate()

    async def fetch_active_alerts(self, force_refresh: bool = False) -> Optional[AlertSnapshot]:
        """
        Current active alerts, or None when the upstream is unavailable.

        A cache hit returns the very tuple stored by the last successful
        fetch, so callers may compare snapshots by identity.
        """
        if not force_refresh:
            cached = self._cache.get(_CACHE_KEY)
            if cached is not None:
                return cached

        async with self._fetch_lock:
            # Another task may have refreshed while we waited
            if not force_refresh:
                cached = self._cache.get(_CACHE_KEY)
                if cached is not None:
                    return cached

            payload = await self._fetch_with_retry()
            if payload is None:
                self._failures += 1
                return None

            alerts = parse_alerts(payload)
            self._cache.set(_CACHE_KEY, alerts)
            self._last_success_at = datetime.now(timezone.utc)
            logger.info("Fetched %d active alerts", len(alerts))
            return alerts

    async def _fetch_with_retry(self) -> Optional[Any]:
        headers: Dict[str, str] = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        client = await self._get_client()

        for attempt in range(self.max_retries + 1):
            self._request_count += 1
            try:
                response = await client.get(self.url, headers=headers)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as exc:
                self._last_error = f"HTTP {exc.response.status_code}"
            except httpx.HTTPError as exc:
                self._last_error = f"{type(exc).__name__}: {exc}"
            except ValueError as exc:
                self._last_error = f"Invalid JSON: {exc}"

            if attempt >= self.max_retries:
                break

            delay_ms = self.base_delay_ms * (2 ** attempt)
            self._retry_count += 1
            logger.warning(
                "Alert fetch failed (%s); retry %d/%d in %dms",
                self._last_error, attempt + 1, self.max_retries, delay_ms,
                extra={"attempt": attempt + 1, "delay_ms": delay_ms},
            )
            await self._sleep(delay_ms / 1000)

        logger.error(
            "Alert source unavailable after %d attempts: %s",
            self.max_retries + 1, self._last_error,
        )
        return None

    def stats(self) -> Dict[str, Any]:
        """Client statistics for the health report."""
        return {
            "requests": self._request_count,
            "retries": self._retry_count,
            "cache_hits": self._cache.hits,
            "failures": self._failures,
            "last_success_at": (
                self._last_success_at.isoformat() if self._last_success_at else None
            ),
            "last_error": self._last_error,
            "cache_age_seconds": self._cache.age(_CACHE_KEY),
        }
