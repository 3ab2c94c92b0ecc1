"""
FastAPI routes: current alert status and the location directory.

Provides endpoints to:
    GET /api/status?location=|uid=   — alert state of one location
    GET /api/status/{city}           — same, plus a country-wide summary
    GET /api/locations               — full directory dump
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from fastapi import APIRouter, Depends, Query

from alert_relay.alerts.models import AlertRecord
from alert_relay.api.dependencies import get_services
from alert_relay.api.schemas import (
    CityStatusResponse,
    CountrywideStatus,
    LocationOut,
    StatusResponse,
)
from alert_relay.core.errors import AlertSourceUnavailable, NotFoundError, ValidationError
from alert_relay.services import RelayServices

router = APIRouter(prefix="/api", tags=["status"])


async def _current_alerts(services: RelayServices) -> Sequence[AlertRecord]:
    alerts = await services.source.fetch_active_alerts()
    if alerts is None:
        raise AlertSourceUnavailable(attempts=services.source.max_retries + 1)
    return alerts


def _distinct_types(records: Sequence[AlertRecord]) -> List[str]:
    seen: List[str] = []
    for r in records:
        if r.threat_type.value not in seen:
            seen.append(r.threat_type.value)
    return seen


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Alert state of one location",
)
async def get_status(
    location: Optional[str] = Query(None, description="Name or short name, substring match"),
    uid: Optional[str] = Query(None, description="Location uid"),
    services: RelayServices = Depends(get_services),
):
    node = services.directory.get(uid) if uid else services.directory.find(location or "")
    if node is None:
        raise ValidationError("Location not found", field="uid" if uid else "location")

    alerts = await _current_alerts(services)
    details = services.resolver.details_for(alerts, node.id)

    return StatusResponse(
        location=node.display_name,
        alert=services.resolver.is_active(alerts, node.id),
        location_uid=node.id,
        alert_count=len(details),
        alert_types=_distinct_types(details),
        timestamp=_now(),
    )


@router.get(
    "/status/{city}",
    response_model=CityStatusResponse,
    summary="Alert state of one location with a country-wide summary",
)
async def get_city_status(
    city: str,
    services: RelayServices = Depends(get_services),
):
    node = services.directory.find(city)
    if node is None:
        raise NotFoundError("Location", query=city)

    alerts = await _current_alerts(services)
    details = services.resolver.details_for(alerts, node.id)
    country = services.resolver.summarize(alerts)

    return CityStatusResponse(
        location=node.display_name,
        short=node.short_name,
        uid=node.id,
        alert=services.resolver.is_active(alerts, node.id),
        alert_types=_distinct_types(details),
        countrywide=CountrywideStatus(
            total_alerts=country.total_alerts,
            oblast_count=country.affected_subdivision_count,
        ),
        timestamp=_now(),
    )


@router.get(
    "/locations",
    response_model=List[LocationOut],
    summary="Every known location",
)
async def list_locations(services: RelayServices = Depends(get_services)):
    return [LocationOut(**node.to_dict()) for node in services.directory.all()]
