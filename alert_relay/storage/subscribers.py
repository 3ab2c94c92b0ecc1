"""
subscribers.py — Durable subscriber records with a short read cache.

Provides:
    • get / list_all / count        served from a 5 s cache of the full map
    • upsert_watch                  subscribe or move to another location
    • set_last_known_state          written by the dispatcher on a transition
    • remove                        unsubscribe

Cache rules
===========
    read   → cache hit, else one SELECT of every row, cached for ttl
    write  → commit first, then patch the one cached entry in place
    failed write → rollback, raise PersistenceError, cache left as it was

Every committed write bumps a generation counter. A full read that was
in flight across a write returns its rows to its caller but does not
store them, so the cache never goes back to a state older than the last
commit.

Re-subscribing
==============
upsert_watch always stores last_known_alert_state = False (Clear), for
new and existing recipients alike. The upsert itself sends nothing; the
next poll treats the new location like a fresh subscription.

set_last_known_state can be guarded by the location the caller evaluated;
a re-subscribe that landed in between then wins and the write is a no-op.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alert_relay.alerts.models import Subscriber
from alert_relay.core.cache import Clock, TTLCache
from alert_relay.core.config import settings
from alert_relay.core.errors import PersistenceError, ValidationError
from alert_relay.directory import LocationDirectory
from alert_relay.storage.tables import SubscriberRow

logger = logging.getLogger(__name__)

_CACHE_KEY = "subscribers"


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_subscriber(row: SubscriberRow) -> Subscriber:
    return Subscriber(
        recipient_id=row.chat_id,
        watched_location_id=row.location_uid,
        display_name=row.username,
        location_name=row.location_name,
        location_type=row.location_type,
        last_known_alert_state=bool(row.last_alert_state),
        subscribed_at=_aware(row.subscribed_at),
        updated_at=_aware(row.updated_at),
    )


class SubscriberStore:
    """
    Owner of every Subscriber record.

    Parameters
    ----------
    session_factory : async_sessionmaker
        Bound to the application engine.
    directory : LocationDirectory | None
        When given, upsert_watch rejects unknown location ids and fills
        in the location name/type.
    cache_ttl : float
        Read cache freshness in seconds (default: settings).
    clock : callable
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: Optional[LocationDirectory] = None,
        *,
        cache_ttl: Optional[float] = None,
        clock: Clock = time.monotonic,
    ):
        self._sessions = session_factory
        self._directory = directory
        self._cache: TTLCache[Dict[str, Subscriber]] = TTLCache(
            settings.SUBSCRIBER_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl,
            clock=clock,
        )
        self._generation = 0

    # ── Reads ──

    async def _snapshot(self) -> Dict[str, Subscriber]:
        cached = self._cache.get(_CACHE_KEY)
        if cached is not None:
            return cached

        generation = self._generation
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(SubscriberRow).order_by(SubscriberRow.id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Failed to load subscribers: %s", exc)
            raise PersistenceError("list_subscribers", str(exc)) from exc

        snapshot = {row.chat_id: _to_subscriber(row) for row in rows}
        if generation == self._generation:
            self._cache.set(_CACHE_KEY, snapshot)
        else:
            logger.debug("Subscriber read overlapped a write; not caching it")
        return snapshot

    def _committed(self, recipient_id: str, subscriber: Optional[Subscriber]) -> None:
        """Record a committed write in the cached map (None removes)."""
        self._generation += 1
        cached = self._cache.get(_CACHE_KEY)
        if cached is None:
            return
        if subscriber is None:
            cached.pop(recipient_id, None)
        else:
            cached[recipient_id] = subscriber

    async def get(self, recipient_id: str) -> Optional[Subscriber]:
        return (await self._snapshot()).get(str(recipient_id))

    async def list_all(self) -> List[Subscriber]:
        return list((await self._snapshot()).values())

    async def count(self) -> int:
        return len(await self._snapshot())

    # ── Writes ──

    async def upsert_watch(
        self,
        recipient_id: str,
        location_id: str,
        display_name: Optional[str] = None,
    ) -> Subscriber:
        """Subscribe ``recipient_id`` to ``location_id``; state is reset to Clear."""
        recipient_id = str(recipient_id)
        location_name = None
        location_type = None
        if self._directory is not None:
            node = self._directory.get(location_id)
            if node is None:
                raise ValidationError(
                    f"Unknown location '{location_id}'", field="location_uid",
                )
            location_name = node.display_name
            location_type = node.kind.value

        now = datetime.now(timezone.utc)
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(SubscriberRow).where(SubscriberRow.chat_id == recipient_id)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    row = SubscriberRow(chat_id=recipient_id, subscribed_at=now)
                    session.add(row)
                row.username = display_name
                row.location_uid = str(location_id)
                row.location_name = location_name
                row.location_type = location_type
                row.last_alert_state = False
                row.updated_at = now
                await session.commit()
                subscriber = _to_subscriber(row)
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to save subscriber %s: %s", recipient_id, exc,
                extra={"recipient_id": recipient_id},
            )
            raise PersistenceError("upsert_watch", str(exc), recipient_id=recipient_id) from exc

        self._committed(recipient_id, subscriber)
        logger.info(
            "Subscriber %s now watches %s", recipient_id, location_id,
            extra={"recipient_id": recipient_id, "location_uid": str(location_id)},
        )
        return subscriber

    async def remove(self, recipient_id: str) -> bool:
        recipient_id = str(recipient_id)
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    delete(SubscriberRow).where(SubscriberRow.chat_id == recipient_id)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to remove subscriber %s: %s", recipient_id, exc)
            raise PersistenceError("remove", str(exc), recipient_id=recipient_id) from exc

        removed = (result.rowcount or 0) > 0
        if removed:
            self._committed(recipient_id, None)
            logger.info("Subscriber %s removed", recipient_id,
                        extra={"recipient_id": recipient_id})
        return removed

    async def set_last_known_state(
        self,
        recipient_id: str,
        state: bool,
        expected_location_id: Optional[str] = None,
    ) -> bool:
        """
        Persist the observed state.

        With ``expected_location_id`` the row is only updated while it still
        watches that location. Returns False when no row was updated
        (recipient gone or moved elsewhere).
        """
        recipient_id = str(recipient_id)
        now = datetime.now(timezone.utc)
        stmt = update(SubscriberRow).where(SubscriberRow.chat_id == recipient_id)
        if expected_location_id is not None:
            stmt = stmt.where(SubscriberRow.location_uid == str(expected_location_id))
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    stmt.values(last_alert_state=bool(state), updated_at=now)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to persist state for %s: %s", recipient_id, exc,
                extra={"recipient_id": recipient_id},
            )
            raise PersistenceError(
                "set_last_known_state", str(exc), recipient_id=recipient_id,
            ) from exc

        if (result.rowcount or 0) <= 0:
            return False
        cached = self._cache.get(_CACHE_KEY)
        previous = cached.get(recipient_id) if cached is not None else None
        self._committed(
            recipient_id,
            replace(previous, last_known_alert_state=bool(state), updated_at=now)
            if previous is not None else None,
        )
        return True

    def invalidate_cache(self) -> None:
        self._cache.invalidate()
