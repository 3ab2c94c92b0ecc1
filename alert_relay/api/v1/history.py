"""
FastAPI route: transition history.

    GET /api/history?page&limit&type&search&dateFrom&dateTo&locationUid
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from alert_relay.api.dependencies import get_services
from alert_relay.api.schemas import HistoryResponse, HistoryStats, Pagination
from alert_relay.services import RelayServices
from alert_relay.storage.history import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter(prefix="/api", tags=["history"])


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Paginated ALERT / END history with totals",
)
async def get_history(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    type: Optional[str] = Query(None, description="ALERT or END"),
    search: Optional[str] = Query(None, description="Substring of the location name"),
    date_from: Optional[str] = Query(None, alias="dateFrom", examples=["2024-05-01"]),
    date_to: Optional[str] = Query(None, alias="dateTo", examples=["2024-05-31"]),
    location_uid: Optional[str] = Query(None, alias="locationUid"),
    services: RelayServices = Depends(get_services),
):
    result = await services.history.query(
        page=page,
        limit=limit,
        alert_type=type,
        search=search,
        date_from=date_from,
        date_to=date_to,
        location_uid=location_uid,
    )
    stats = await services.history.stats()
    body = result.to_dict()

    return HistoryResponse(
        data=body["data"],
        pagination=Pagination(**body["pagination"]),
        stats=HistoryStats(**stats),
    )
