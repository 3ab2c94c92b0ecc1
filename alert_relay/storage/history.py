"""
history.py — Persistent log of ALERT / END transitions.

Provides:
    • record(entry)   append one transition
    • query(...)      filtered, newest-first, paginated read
    • stats()         totals across the whole log

Filters
=======
    alert_type     exact ALERT | END
    location_uid   exact
    search         substring of location_name
    date_from      created_at >= bound
    date_to        created_at <= bound (a bare date covers that whole day)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alert_relay.alerts.models import HistoryEntry, Transition
from alert_relay.core.errors import PersistenceError, ValidationError
from alert_relay.storage.tables import HistoryRow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

DateBound = Union[str, date, datetime, None]


@dataclass
class HistoryPage:
    data: List[HistoryEntry] = field(default_factory=list)
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [e.to_dict() for e in self.data],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_date_bound(value: DateBound, *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Normalise a filter bound to an aware UTC datetime.

    A bare date (``2024-05-01``) means the start of that day, or its last
    instant when ``end_of_day`` is set.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _aware(value).astimezone(timezone.utc)
    if isinstance(value, date):
        day = value
    else:
        text = str(value).strip()
        try:
            if len(text) == 10:
                day = date.fromisoformat(text)
            else:
                return _aware(datetime.fromisoformat(text.replace("Z", "+00:00"))).astimezone(timezone.utc)
        except ValueError as exc:
            raise ValidationError(f"Invalid date '{text}'", field="date") from exc

    if end_of_day:
        return datetime.combine(day + timedelta(days=1), time.min, tzinfo=timezone.utc) - timedelta(microseconds=1)
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _to_entry(row: HistoryRow) -> HistoryEntry:
    return HistoryEntry(
        id=row.id,
        location_uid=row.location_uid,
        location_name=row.location_name,
        alert_type=Transition(row.alert_type),
        recipient_id=row.recipient_id,
        delivery_status=row.delivery_status,
        threat_types=list(row.threat_types or []),
        weather_temp=row.weather_temp,
        weather_desc=row.weather_desc,
        weather_icon=row.weather_icon,
        raions=list(row.raions or []),
        country_count=row.country_count or 0,
        created_at=_aware(row.created_at),
    )


class HistoryStore:
    """Append-only transition log."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def record(self, entry: HistoryEntry) -> int:
        """Insert ``entry``; returns its id."""
        row = HistoryRow(
            location_uid=entry.location_uid,
            location_name=entry.location_name,
            alert_type=entry.alert_type.value,
            recipient_id=entry.recipient_id,
            delivery_status=entry.delivery_status,
            threat_types=list(entry.threat_types),
            weather_temp=entry.weather_temp,
            weather_desc=entry.weather_desc,
            weather_icon=entry.weather_icon,
            raions=list(entry.raions),
            country_count=entry.country_count,
            created_at=entry.created_at,
        )
        try:
            async with self._sessions() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to record %s for %s: %s",
                entry.alert_type.value, entry.location_uid, exc,
                extra={"location_uid": entry.location_uid},
            )
            raise PersistenceError("record_history", str(exc)) from exc

        entry.id = row.id
        logger.debug(
            "History: %s %s (%s)", entry.alert_type.value, entry.location_name,
            entry.recipient_id or "broadcast",
        )
        return row.id

    async def query(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        alert_type: Optional[str] = None,
        search: Optional[str] = None,
        date_from: DateBound = None,
        date_to: DateBound = None,
        location_uid: Optional[str] = None,
    ) -> HistoryPage:
        page = max(1, int(page))
        limit = min(max(1, int(limit)), MAX_PAGE_SIZE)

        filters = []
        if alert_type:
            try:
                filters.append(HistoryRow.alert_type == Transition(alert_type.upper()).value)
            except ValueError as exc:
                raise ValidationError(
                    f"Invalid type '{alert_type}' (expected ALERT or END)", field="type",
                ) from exc
        if location_uid:
            filters.append(HistoryRow.location_uid == str(location_uid))
        if search:
            filters.append(HistoryRow.location_name.like(f"%{search}%"))
        lower = parse_date_bound(date_from)
        if lower is not None:
            filters.append(HistoryRow.created_at >= lower)
        upper = parse_date_bound(date_to, end_of_day=True)
        if upper is not None:
            filters.append(HistoryRow.created_at <= upper)

        try:
            async with self._sessions() as session:
                total = await session.scalar(
                    select(func.count()).select_from(HistoryRow).where(*filters)
                )
                result = await session.execute(
                    select(HistoryRow)
                    .where(*filters)
                    .order_by(HistoryRow.created_at.desc(), HistoryRow.id.desc())
                    .limit(limit)
                    .offset((page - 1) * limit)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.error("History query failed: %s", exc)
            raise PersistenceError("query_history", str(exc)) from exc

        return HistoryPage(
            data=[_to_entry(r) for r in rows],
            page=page,
            limit=limit,
            total=total or 0,
        )

    async def stats(self) -> Dict[str, Any]:
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(
                        func.count(HistoryRow.id),
                        func.sum(case((HistoryRow.alert_type == Transition.ALERT.value, 1), else_=0)),
                        func.sum(case((HistoryRow.alert_type == Transition.END.value, 1), else_=0)),
                        func.min(HistoryRow.created_at),
                        func.max(HistoryRow.created_at),
                    )
                )
                total, alerts, ends, first, last = result.one()
        except SQLAlchemyError as exc:
            logger.error("History stats failed: %s", exc)
            raise PersistenceError("history_stats", str(exc)) from exc

        first, last = _aware(first), _aware(last)
        return {
            "total": total or 0,
            "alerts": int(alerts or 0),
            "ends": int(ends or 0),
            "first_record": first.isoformat() if first else None,
            "last_record": last.isoformat() if last else None,
        }
