"""
Pydantic schemas for the read API and subscriber management.

Field names are snake_case in Python and camelCase on the wire
(``locationUid``, ``alertTypes``, ...), matching the JSON the bot's web
dashboard already consumes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

class StatusResponse(_CamelModel):
    location: str
    alert: bool
    location_uid: str
    alert_count: int
    alert_types: List[str]
    timestamp: str


class CountrywideStatus(_CamelModel):
    total_alerts: int
    oblast_count: int


class CityStatusResponse(_CamelModel):
    location: str
    short: str
    uid: str
    alert: bool
    alert_types: List[str]
    countrywide: CountrywideStatus
    timestamp: str


class LocationOut(_CamelModel):
    uid: str
    name: str
    short: str
    type: str
    parent_uid: Optional[str] = None


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class Pagination(_CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class HistoryStats(BaseModel):
    total: int = 0
    alerts: int = 0
    ends: int = 0
    first_record: Optional[str] = None
    last_record: Optional[str] = None


class HistoryResponse(BaseModel):
    data: List[Dict[str, Any]]
    pagination: Pagination
    stats: HistoryStats


# ---------------------------------------------------------------------------
# Subscribers / operations
# ---------------------------------------------------------------------------

class SubscribeRequest(_CamelModel):
    location_uid: str = Field(..., min_length=1, examples=["24"])
    username: Optional[str] = Field(None, max_length=255, examples=["olena"])


class SubscriberOut(_CamelModel):
    chat_id: str
    username: Optional[str] = None
    location_uid: str
    location_name: Optional[str] = None
    location_type: Optional[str] = None
    last_alert_state: bool
    subscribed_at: str
    updated_at: Optional[str] = None


class SubscriberList(BaseModel):
    count: int
    data: List[SubscriberOut]


class NotificationKind(str, Enum):
    ALERT = "alert"
    END = "end"


class SendTestRequest(_CamelModel):
    location_uid: str = Field(..., min_length=1, examples=["24"])
    type: NotificationKind = NotificationKind.ALERT


class SendTestResponse(BaseModel):
    sent: int
    type: NotificationKind
