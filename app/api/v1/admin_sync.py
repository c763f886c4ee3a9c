from typing import Literal

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_ingestion_service
from app.ingestion.service import IngestionService

router = APIRouter()


@router.post("/admin/sync/stations")
async def sync_stations(svc: IngestionService = Depends(get_ingestion_service)):
    return await svc.sync_stations()


@router.post("/admin/sync/prices")
async def sync_prices(
    since: str | None = Query(None, description="ISO timestamp; defaults to the last price sync"),
    svc: IngestionService = Depends(get_ingestion_service),
):
    return await svc.sync_prices(since)


@router.get("/admin/sync/runs")
async def recent_runs(
    limit: int = Query(20, ge=1, le=200),
    svc: IngestionService = Depends(get_ingestion_service),
):
    return await svc.recent_runs(limit)


@router.get("/admin/sync/runs/last")
async def last_successful_run(
    sync_type: Literal["stations", "prices"] = Query(...),
    svc: IngestionService = Depends(get_ingestion_service),
):
    run = await svc.last_successful_run(sync_type)
    if not run:
        return {"found": False}
    return {"found": True, **run}
