"""
Health probe over the relay's moving parts.

Components:
    database           SELECT 1 plus the subscriber count
    alert_source       fetch counters from the alerts.in.ua client
    scheduler          poll loops running, last cycle errors
    notification_sink  Telegram vs. simulation mode

The overall status is the worst component status. Readiness answers 503
only when something is UNHEALTHY; simulation mode and a feed that has
not answered yet are reported as DEGRADED.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from alert_relay.core.config import settings
from alert_relay.core.database import ping_db
from alert_relay.core.errors import PersistenceError

if TYPE_CHECKING:
    from alert_relay.services import RelayServices

logger = logging.getLogger(__name__)

_BOOTED_AT = time.monotonic()


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    message: str = ""
    latency_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    def degrade(self, status: HealthStatus, message: str) -> None:
        if status.rank > self.status.rank:
            self.status = status
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        out.update({k: v for k, v in (("message", self.message), ("details", self.details)) if v})
        return out


@dataclass
class HealthReport:
    components: List[ComponentHealth] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> HealthStatus:
        worst = HealthStatus.HEALTHY
        for comp in self.components:
            if comp.status.rank > worst.rank:
                worst = comp.status
        return worst

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "timestamp": self.checked_at.isoformat(),
            "uptime_seconds": round(time.monotonic() - _BOOTED_AT, 1),
            "components": [comp.to_dict() for comp in self.components],
        }


Probe = Callable[["RelayServices", ComponentHealth], Awaitable[None]]


async def _probe_database(services: "RelayServices", comp: ComponentHealth) -> None:
    try:
        await ping_db(services.engine)
        comp.details = {
            "url": str(services.engine.url).split("@")[-1],
            "subscribers": await services.store.count(),
        }
        comp.message = "Connection available"
    except (SQLAlchemyError, PersistenceError) as exc:
        comp.degrade(HealthStatus.UNHEALTHY, str(exc))


async def _probe_alert_source(services: "RelayServices", comp: ComponentHealth) -> None:
    stats = services.source.stats()
    comp.details = stats
    if stats["last_success_at"] is not None:
        comp.message = f"Last success {stats['last_success_at']}"
    elif stats["failures"]:
        comp.degrade(HealthStatus.DEGRADED, f"No successful fetch yet ({stats['last_error']})")
    else:
        comp.message = "Not polled yet"


async def _probe_scheduler(services: "RelayServices", comp: ComponentHealth) -> None:
    status = services.scheduler.status()
    comp.details = status
    if not services.polling_enabled:
        comp.message = "Polling disabled (API-only mode)"
    elif not status["running"]:
        comp.degrade(HealthStatus.UNHEALTHY, "Poll tasks not running")
    elif any(job["last_error"] for job in status["jobs"]):
        comp.degrade(HealthStatus.DEGRADED, "Last cycle failed for at least one job")
    else:
        comp.message = "Polling"


async def _probe_sink(services: "RelayServices", comp: ComponentHealth) -> None:
    comp.details = {"sink": services.sink.name}
    if services.sink.name == "simulated":
        comp.degrade(HealthStatus.DEGRADED, "Simulation mode (no TELEGRAM_BOT_TOKEN)")
    else:
        comp.message = "Telegram Bot API"


PROBES: Dict[str, Probe] = {
    "database": _probe_database,
    "alert_source": _probe_alert_source,
    "scheduler": _probe_scheduler,
    "notification_sink": _probe_sink,
}


async def run_health_check(services: "RelayServices") -> HealthReport:
    report = HealthReport()
    for name, probe in PROBES.items():
        comp = ComponentHealth(name=name)
        started = time.perf_counter()
        await probe(services, comp)
        comp.latency_ms = (time.perf_counter() - started) * 1000
        if comp.status is not HealthStatus.HEALTHY:
            logger.debug("Health %s: %s (%s)", name, comp.status.value, comp.message)
        report.components.append(comp)
    return report
