"""
FastAPI routes: subscriber management.

Provides endpoints to:
    GET    /api/subscribers             — list every subscriber
    GET    /api/subscribers/{chat_id}   — one subscriber
    PUT    /api/subscribers/{chat_id}   — subscribe / move to another location
    DELETE /api/subscribers/{chat_id}   — unsubscribe

Subscribing (also to a different location) stores the Clear state; the
next poll cycle decides whether an ALERT goes out.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from alert_relay.api.dependencies import get_services
from alert_relay.api.schemas import SubscribeRequest, SubscriberList, SubscriberOut
from alert_relay.core.errors import NotFoundError
from alert_relay.services import RelayServices

router = APIRouter(prefix="/api/subscribers", tags=["subscribers"])


@router.get("", response_model=SubscriberList, summary="List subscribers")
async def list_subscribers(services: RelayServices = Depends(get_services)):
    subscribers = await services.store.list_all()
    return SubscriberList(
        count=len(subscribers),
        data=[SubscriberOut(**s.to_dict()) for s in subscribers],
    )


@router.get("/{chat_id}", response_model=SubscriberOut, summary="One subscriber")
async def get_subscriber(chat_id: str, services: RelayServices = Depends(get_services)):
    subscriber = await services.store.get(chat_id)
    if subscriber is None:
        raise NotFoundError("Subscriber", chat_id=chat_id)
    return SubscriberOut(**subscriber.to_dict())


@router.put("/{chat_id}", response_model=SubscriberOut, summary="Subscribe or change location")
async def subscribe(
    chat_id: str,
    body: SubscribeRequest,
    services: RelayServices = Depends(get_services),
):
    subscriber = await services.store.upsert_watch(
        chat_id, body.location_uid, display_name=body.username,
    )
    return SubscriberOut(**subscriber.to_dict())


@router.delete("/{chat_id}", summary="Unsubscribe")
async def unsubscribe(chat_id: str, services: RelayServices = Depends(get_services)):
    if not await services.store.remove(chat_id):
        raise NotFoundError("Subscriber", chat_id=chat_id)
    return {"removed": True, "chatId": chat_id}
