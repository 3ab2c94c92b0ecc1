"""
FastAPI routes: operator actions.

    POST /api/test/send   — test ALERT / END to subscribers of a location
    POST /api/cycle       — run one subscriber cycle now
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from alert_relay.alerts.models import Transition
from alert_relay.api.dependencies import get_services
from alert_relay.api.schemas import NotificationKind, SendTestRequest, SendTestResponse
from alert_relay.core.errors import ValidationError
from alert_relay.services import RelayServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["operations"])


@router.post("/test/send", response_model=SendTestResponse, summary="Send a test notification")
async def send_test(body: SendTestRequest, services: RelayServices = Depends(get_services)):
    if services.directory.get(body.location_uid) is None:
        raise ValidationError(f"Unknown location '{body.location_uid}'", field="locationUid")

    transition = Transition.ALERT if body.type is NotificationKind.ALERT else Transition.END
    logger.info("Test send: %s for %s", body.type.value, body.location_uid,
                extra={"location_uid": body.location_uid})
    sent = await services.dispatcher.send_test(body.location_uid, transition)
    return SendTestResponse(sent=sent, type=body.type)


@router.post("/cycle", summary="Run one subscriber cycle")
async def run_cycle(services: RelayServices = Depends(get_services)):
    report = await services.dispatcher.run_cycle()
    return report.to_dict()
