"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    Alert,
    FleetSummary,
    HistoryPointOut,
    HistoryResponse,
    IngestResponse,
    ReadingIn,
    UnitStatus,
)
from services.monitor import StorageMonitorService, build_default_monitor

router = APIRouter()


def get_monitor() -> StorageMonitorService:
    return build_default_monitor()


def _not_found(exc: KeyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0])


@router.post(
    "/units/{unit_id}/readings",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=IngestResponse,
    summary="Push a raw sensor reading for a storage unit.",
)
async def push_reading(
    unit_id: str,
    reading: ReadingIn,
    monitor: StorageMonitorService = Depends(get_monitor),
) -> IngestResponse:
    try:
        key = monitor.ingest(unit_id, reading.model_dump(exclude_none=True))
    except KeyError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return IngestResponse(unit_id=unit_id, key=key)


@router.get(
    "/units",
    response_model=List[UnitStatus],
    summary="List monitored units with their connection state and latest snapshot.",
)
async def list_units(
    monitor: StorageMonitorService = Depends(get_monitor),
) -> List[UnitStatus]:
    return monitor.list_units()


@router.get(
    "/units/{unit_id}/snapshot",
    response_model=UnitStatus,
    summary="Latest classified snapshot; null while the feed is offline.",
)
async def get_snapshot(
    unit_id: str,
    monitor: StorageMonitorService = Depends(get_monitor),
) -> UnitStatus:
    try:
        return monitor.unit_status(unit_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/units/{unit_id}/history",
    response_model=HistoryResponse,
    summary="Temperature and humidity points within the lookback window.",
)
async def get_history(
    unit_id: str,
    hours: Optional[float] = Query(None, gt=0, le=24 * 365),
    monitor: StorageMonitorService = Depends(get_monitor),
) -> HistoryResponse:
    window = monitor.lookback_hours(hours)
    try:
        points = monitor.history(unit_id, window)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return HistoryResponse(
        unit_id=unit_id,
        hours=window,
        points=[HistoryPointOut(**point.to_record()) for point in points],
    )


@router.get(
    "/units/{unit_id}/alerts",
    response_model=List[Alert],
    summary="Active alerts derived from the latest snapshot.",
)
async def get_alerts(
    unit_id: str,
    monitor: StorageMonitorService = Depends(get_monitor),
) -> List[Alert]:
    try:
        return monitor.alerts(unit_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/summary",
    response_model=FleetSummary,
    summary="Fleet-wide counts of critical and warning units and average risk.",
)
async def get_summary(
    monitor: StorageMonitorService = Depends(get_monitor),
) -> FleetSummary:
    return monitor.summary()


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
