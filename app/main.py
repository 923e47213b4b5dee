from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api import router
from app.schemas import ErrorResponse
from logging_config import configure_logging
from models.errors import InvalidPayload, StorageUnavailable, TelemetryError
from services.aggregator import Aggregator
from services.ingestion import IngestionCoordinator, build_default_coordinator
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

_STATUS_BY_KIND: Dict[str, int] = {
    "InvalidPayload": status.HTTP_400_BAD_REQUEST,
    "InvalidZone": status.HTTP_400_BAD_REQUEST,
    "InvalidDate": status.HTTP_400_BAD_REQUEST,
    "InvalidYear": status.HTTP_400_BAD_REQUEST,
    "InvalidMonth": status.HTTP_400_BAD_REQUEST,
    "NotFound": status.HTTP_404_NOT_FOUND,
    "StorageUnavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}

_STORAGE_MESSAGE = "Historical data is temporarily unavailable. Please try again shortly."


def _error_response(status_code: int, exc: TelemetryError, message: str) -> JSONResponse:
    body = ErrorResponse(kind=exc.kind, error=exc.title, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(
    coordinator: Optional[IngestionCoordinator] = None,
    aggregator: Optional[Aggregator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the application; pass pre-built services to isolate tests."""
    configure_logging()
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active = coordinator or build_default_coordinator(settings)
        app.state.coordinator = active
        app.state.aggregator = aggregator or Aggregator(active.timeseries, tz=settings.tzinfo)
        logger.info(
            "Telemetry engine started for zones %s (time zone %s)",
            ", ".join(active.snapshots.zones),
            settings.time_zone,
        )
        try:
            yield
        finally:
            active.shutdown()

    app = FastAPI(
        title="Vertical Farm Telemetry",
        description="Zone telemetry ingestion, live snapshots and historical rollups.",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(TelemetryError)
    async def handle_telemetry_error(request: Request, exc: TelemetryError) -> JSONResponse:
        status_code = _STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        message = exc.message
        if isinstance(exc, StorageUnavailable):
            logger.error(
                "Query failed: %s %s",
                request.method,
                request.url.path,
                extra={"kind": exc.kind, "reason": exc.message},
            )
            if not settings.debug:
                message = _STORAGE_MESSAGE
        return _error_response(status_code, exc, message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = InvalidPayload("Request did not match the expected shape.")
        message = str(exc.errors()) if settings.debug else error.message
        return _error_response(status.HTTP_400_BAD_REQUEST, error, message)

    app.include_router(router)
    return app


app = create_app()
