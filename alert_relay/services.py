"""
services.py — Builds and owns the long-lived components.

One RelayServices instance lives on ``app.state.services`` for the life
of the process. Tests build their own with an in-memory database, a
SimulatedSink and an httpx.MockTransport-backed AlertSource.

Usage:
    services = build_services()
    await services.start()
    ...
    await services.shutdown()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from alert_relay.alerts.channels import NotificationSink, SimulatedSink, TelegramSink
from alert_relay.alerts.dispatcher import BroadcastDispatcher, TransitionDispatcher
from alert_relay.alerts.resolver import AlertResolver
from alert_relay.alerts.scheduler import PeriodicJob, PollScheduler
from alert_relay.core.config import settings
from alert_relay.core.database import build_engine, build_session_factory, close_db, init_db
from alert_relay.directory import LocationDirectory
from alert_relay.ingestion.alert_source import AlertSource
from alert_relay.ingestion.weather_service import WeatherService
from alert_relay.storage.history import HistoryStore
from alert_relay.storage.subscribers import SubscriberStore

logger = logging.getLogger(__name__)


@dataclass
class RelayServices:
    engine: AsyncEngine
    sessions: async_sessionmaker[AsyncSession]
    directory: LocationDirectory
    resolver: AlertResolver
    source: AlertSource
    weather: WeatherService
    sink: NotificationSink
    store: SubscriberStore
    history: HistoryStore
    dispatcher: TransitionDispatcher
    broadcaster: BroadcastDispatcher
    scheduler: PollScheduler
    polling_enabled: bool = True

    async def start(self) -> None:
        """Create tables and, unless disabled, start polling."""
        await init_db(self.engine)
        if self.polling_enabled:
            self.scheduler.start()
        else:
            logger.warning("Polling DISABLED (running in API-only mode)")

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.source.close()
        await self.weather.close()
        await self.sink.close()
        await close_db(self.engine)


def default_sink() -> NotificationSink:
    if settings.telegram_enabled:
        return TelegramSink()
    logger.warning("TELEGRAM_BOT_TOKEN not set; notifications are only logged")
    return SimulatedSink()


def build_services(
    *,
    database_url: Optional[str] = None,
    source: Optional[AlertSource] = None,
    weather: Optional[WeatherService] = None,
    sink: Optional[NotificationSink] = None,
    directory: Optional[LocationDirectory] = None,
    polling_enabled: Optional[bool] = None,
) -> RelayServices:
    """Wire every component from settings; any piece can be overridden."""
    engine = build_engine(database_url)
    sessions = build_session_factory(engine)
    directory = directory or LocationDirectory()
    resolver = AlertResolver(directory)
    source = source or AlertSource()
    weather = weather or WeatherService()
    sink = sink or default_sink()
    store = SubscriberStore(sessions, directory)
    history = HistoryStore(sessions)

    dispatcher = TransitionDispatcher(
        source, store, sink, directory, resolver,
        history=history, weather=weather,
    )
    broadcaster = BroadcastDispatcher(
        source, sink, directory, resolver,
        history=history, weather=weather,
    )
    scheduler = PollScheduler([
        PeriodicJob("subscribers", settings.POLL_INTERVAL_SECONDS, dispatcher.run_cycle),
        PeriodicJob("broadcast", settings.BROADCAST_INTERVAL_SECONDS, broadcaster.run_cycle),
    ])

    return RelayServices(
        engine=engine,
        sessions=sessions,
        directory=directory,
        resolver=resolver,
        source=source,
        weather=weather,
        sink=sink,
        store=store,
        history=history,
        dispatcher=dispatcher,
        broadcaster=broadcaster,
        scheduler=scheduler,
        polling_enabled=settings.POLLING_ENABLED if polling_enabled is None else polling_enabled,
    )
