"""
ASGI entry point for the alert relay.

    uvicorn alert_relay.main:app --port 8000
    python -m alert_relay.main          # HOST / PORT from settings

The lifespan builds the service container, starts the poll loops and
stops them on shutdown. POLLING_ENABLED=false serves the read API only.
"""

from contextlib import asynccontextmanager
from typing import Callable

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from alert_relay.core.config import settings
from alert_relay.core.errors import register_error_handlers
from alert_relay.core.health import HealthStatus, run_health_check
from alert_relay.core.logging_config import get_logger, setup_logging
from alert_relay.core.middleware import RequestLoggingMiddleware
from alert_relay.services import RelayServices, build_services
from alert_relay.api.v1 import history, operations, status, subscribers

setup_logging()
logger = get_logger(__name__)

probes = APIRouter(tags=["health"])


@probes.get("/", tags=["root"])
async def index():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/docs",
    }


@probes.get("/health")
async def health(request: Request):
    """Per-component report: database, alert feed, poll loops, sink."""
    report = await run_health_check(request.app.state.services)
    return report.to_dict()


@probes.get("/health/live")
async def live():
    return {"status": "alive"}


@probes.get("/health/ready")
async def ready(request: Request):
    report = await run_health_check(request.app.state.services)
    code = 503 if report.status is HealthStatus.UNHEALTHY else 200
    return JSONResponse(status_code=code, content=report.to_dict())


def create_app(
    services_factory: Callable[[], RelayServices] = build_services,
) -> FastAPI:
    """Tests pass a factory that wires in-memory services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s %s starting (%s)", settings.APP_NAME, settings.APP_VERSION,
                    settings.ENVIRONMENT)
        services = services_factory()
        await services.start()
        app.state.services = services
        try:
            yield
        finally:
            logger.info("%s stopping", settings.APP_NAME)
            await services.shutdown()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=(
            "Relays air-raid alert and all-clear transitions for watched "
            "Ukrainian locations to Telegram, with a country-wide summary "
            "and local weather."
        ),
        lifespan=lifespan,
    )

    origins = ["*"] if settings.CORS_ALLOW_ALL else settings.CORS_ORIGINS
    app.add_middleware(CORSMiddleware, allow_origins=origins, allow_credentials=True,
                       allow_methods=["*"], allow_headers=["*"])
    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    for module in (status, history, subscribers, operations):
        app.include_router(module.router)
    app.include_router(probes)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("alert_relay.main:app", host=settings.HOST, port=settings.PORT)
