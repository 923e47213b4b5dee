"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from app.schemas import (
    AllZonesDailyResponse,
    AllZonesMonthlyResponse,
    DailyResponse,
    ErrorResponse,
    HealthResponse,
    IngestResponse,
    MonthlyResponse,
    ReadingOut,
)
from models.errors import InvalidPayload
from services.aggregator import Aggregator
from services.ingestion import IngestionCoordinator

router = APIRouter()

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def get_coordinator(request: Request) -> IngestionCoordinator:
    return request.app.state.coordinator


def get_aggregator(request: Request) -> Aggregator:
    return request.app.state.aggregator


@router.post(
    "/ingest",
    response_model=IngestResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
    summary="Accept a single-zone or multi-zone telemetry payload.",
)
async def ingest(
    request: Request,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
) -> IngestResponse:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise InvalidPayload("Request body must be valid JSON.") from exc
    outcome = coordinator.ingest(payload)
    return IngestResponse(accepted=outcome.accepted, rejected=outcome.rejected)


@router.get(
    "/snapshot",
    response_model=Dict[str, Optional[ReadingOut]],
    summary="Latest reading of every zone, null for zones without data.",
)
async def get_snapshot(
    coordinator: IngestionCoordinator = Depends(get_coordinator),
) -> Dict[str, Optional[ReadingOut]]:
    return {
        zone: ReadingOut.from_reading(reading) if reading else None
        for zone, reading in coordinator.snapshots.get_all().items()
    }


@router.get(
    "/snapshot/{zone}",
    response_model=Optional[ReadingOut],
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    summary="Latest reading of one zone, null when none arrived yet.",
)
async def get_zone_snapshot(
    zone: str,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
) -> Optional[ReadingOut]:
    reading = coordinator.snapshots.get(zone)
    return ReadingOut.from_reading(reading) if reading else None


# Aggregations wait on the store lock, so they run in the threadpool.
@router.get(
    "/sensor/daily",
    response_model=AllZonesDailyResponse,
    responses=_ERROR_RESPONSES,
    summary="Daily readings and summary for every zone.",
)
def get_all_zones_daily(
    date: Optional[str] = Query(None, description="Day to report (YYYY-MM-DD), defaults to today."),
    aggregator: Aggregator = Depends(get_aggregator),
) -> AllZonesDailyResponse:
    target = aggregator.resolve_date(date)
    aggregates = aggregator.get_daily_all_zones(target)
    return AllZonesDailyResponse(
        date=target,
        zones={zone: DailyResponse.from_aggregate(agg) for zone, agg in aggregates.items()},
    )


@router.get(
    "/sensor/daily/{zone}",
    response_model=DailyResponse,
    responses=_ERROR_RESPONSES,
    summary="Daily readings and summary for one zone.",
)
def get_daily(
    zone: str,
    date: Optional[str] = Query(None, description="Day to report (YYYY-MM-DD), defaults to today."),
    aggregator: Aggregator = Depends(get_aggregator),
) -> DailyResponse:
    return DailyResponse.from_aggregate(aggregator.get_daily(zone, date))


@router.get(
    "/sensor/monthly",
    response_model=AllZonesMonthlyResponse,
    responses=_ERROR_RESPONSES,
    summary="Per-day rollups and monthly summary for every zone.",
)
def get_all_zones_monthly(
    year: Optional[str] = Query(None, description="Year (2000-2100), defaults to current."),
    month: Optional[str] = Query(None, description="Month (1-12), defaults to current."),
    aggregator: Aggregator = Depends(get_aggregator),
) -> AllZonesMonthlyResponse:
    target_year, target_month = aggregator.resolve_month(year, month)
    aggregates = aggregator.get_monthly_all_zones(target_year, target_month)
    return AllZonesMonthlyResponse(
        year=target_year,
        month=target_month,
        zones={zone: MonthlyResponse.from_aggregate(agg) for zone, agg in aggregates.items()},
    )


@router.get(
    "/sensor/monthly/{zone}",
    response_model=MonthlyResponse,
    responses=_ERROR_RESPONSES,
    summary="Per-day rollups and monthly summary for one zone.",
)
def get_monthly(
    zone: str,
    year: Optional[str] = Query(None, description="Year (2000-2100), defaults to current."),
    month: Optional[str] = Query(None, description="Month (1-12), defaults to current."),
    aggregator: Aggregator = Depends(get_aggregator),
) -> MonthlyResponse:
    return MonthlyResponse.from_aggregate(aggregator.get_monthly(zone, year, month))


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint, including storage reachability.",
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": HealthResponse}},
)
def healthcheck(
    coordinator: IngestionCoordinator = Depends(get_coordinator),
) -> Any:
    pending = coordinator.pending()
    if coordinator.timeseries.ping():
        return HealthResponse(status="ok", storage="ok", pending_writes=pending)
    body = HealthResponse(status="degraded", storage="unavailable", pending_writes=pending)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(mode="json", by_alias=True),
    )


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
