"""FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from alert_relay.core.errors import ServiceNotReady
from alert_relay.services import RelayServices


def get_services(request: Request) -> RelayServices:
    """The container built in the application lifespan."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ServiceNotReady("Services not initialised")
    return services
