"""
scheduler.py — Periodic poll tasks.

Two independent asyncio tasks run for the life of the process:

    subscribers   TransitionDispatcher.run_cycle  every POLL_INTERVAL_SECONDS
    broadcast     BroadcastDispatcher.run_cycle   every BROADCAST_INTERVAL_SECONDS

Both use the same caching AlertSource, so running them side by side
does not double the upstream request rate.

Every cycle is bounded by CYCLE_TIMEOUT_SECONDS; a timed-out or
crashing cycle is logged and the loop carries on. stop() prevents new
cycles, gives the in-flight ones SHUTDOWN_GRACE_SECONDS to finish, then
cancels whatever is left.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from alert_relay.alerts.models import CycleReport
from alert_relay.core.config import settings

logger = logging.getLogger(__name__)

CycleFn = Callable[[], Awaitable[CycleReport]]


@dataclass
class PeriodicJob:
    name: str
    interval: float
    run: CycleFn
    cycles: int = 0
    failures: int = 0
    in_flight: bool = False
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_report: Optional[CycleReport] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval,
            "cycles": self.cycles,
            "failures": self.failures,
            "in_flight": self.in_flight,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }


class PollScheduler:
    """
    Runs each PeriodicJob on its own interval.

    Usage::

        scheduler = PollScheduler([
            PeriodicJob("subscribers", 30, dispatcher.run_cycle),
            PeriodicJob("broadcast", 30, broadcaster.run_cycle),
        ])
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        jobs: List[PeriodicJob],
        *,
        cycle_timeout: Optional[float] = None,
        grace_period: Optional[float] = None,
    ):
        self.jobs = list(jobs)
        self.cycle_timeout = settings.CYCLE_TIMEOUT_SECONDS if cycle_timeout is None else cycle_timeout
        self.grace_period = settings.SHUTDOWN_GRACE_SECONDS if grace_period is None else grace_period
        self._stopping = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._loop(job), name=f"poll:{job.name}")
            for job in self.jobs
        ]
        logger.info(
            "Poll scheduler started: %s",
            ", ".join(f"{j.name} every {j.interval:g}s" for j in self.jobs),
        )

    async def stop(self) -> None:
        """Stop new cycles; wait up to the grace period, then cancel."""
        if not self._tasks:
            return
        self._stopping.set()
        _, pending = await asyncio.wait(self._tasks, timeout=self.grace_period)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Cancelled %d poll task(s) after %.1fs grace",
                           len(pending), self.grace_period)
        self._tasks = []
        logger.info("Poll scheduler stopped")

    async def _loop(self, job: PeriodicJob) -> None:
        while not self._stopping.is_set():
            await self.run_once(job)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=job.interval)
            except asyncio.TimeoutError:
                pass

    async def run_once(self, job: PeriodicJob) -> Optional[CycleReport]:
        """One bounded cycle; never raises."""
        job.in_flight = True
        job.last_run_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        try:
            report = await asyncio.wait_for(job.run(), timeout=self.cycle_timeout)
        except asyncio.TimeoutError:
            job.failures += 1
            job.last_error = f"cycle exceeded {self.cycle_timeout:g}s"
            logger.error("%s cycle timed out after %.1fs", job.name, self.cycle_timeout)
            return None
        except Exception as exc:
            job.failures += 1
            job.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("%s cycle crashed", job.name)
            return None
        finally:
            job.in_flight = False
            job.cycles += 1

        job.last_error = None
        job.last_report = report
        logger.debug("%s cycle took %.0fms", job.name, (time.perf_counter() - started) * 1000)
        return report

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "stopping": self._stopping.is_set(),
            "jobs": [j.to_dict() for j in self.jobs],
        }
