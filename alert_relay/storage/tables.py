"""
ORM tables for subscribers and the transition history log.

    subscribers      one row per chat; chat_id is unique
    alerts_history   one row per ALERT / END transition
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, String

from alert_relay.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriberRow(Base):
    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(String(64), unique=True, nullable=False, index=True)
    username = Column(String(255), nullable=True)
    location_uid = Column(String(16), nullable=False)
    location_name = Column(String(255), nullable=True)
    location_type = Column(String(32), nullable=True)
    last_alert_state = Column(Boolean, nullable=False, default=False)
    subscribed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, default=_utcnow, onupdate=_utcnow)


class HistoryRow(Base):
    __tablename__ = "alerts_history"
    __table_args__ = (
        Index("ix_alerts_history_created_at", "created_at"),
        Index("ix_alerts_history_location_uid", "location_uid"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_uid = Column(String(16), nullable=False)
    location_name = Column(String(255), nullable=False)
    alert_type = Column(String(8), nullable=False)          # ALERT | END
    recipient_id = Column(String(64), nullable=True)        # None for broadcasts
    delivery_status = Column(String(16), nullable=True)
    threat_types = Column(JSON, nullable=False, default=list)
    weather_temp = Column(Float, nullable=True)
    weather_desc = Column(String(255), nullable=True)
    weather_icon = Column(String(16), nullable=True)
    raions = Column(JSON, nullable=False, default=list)
    country_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
