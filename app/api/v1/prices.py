from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.services import queries

router = APIRouter()

FuelTypeParam = Literal["E5", "E10", "Diesel", "Super Diesel", "B10", "HVO"]


@router.get("/prices/current")
async def current_prices(station_id: int, db: AsyncSession = Depends(get_db)):
    rows = await queries.get_current_prices(db, station_id)
    return [p.as_dict() for p in rows]


@router.get("/prices/history")
async def price_history(
    station_id: int,
    fuel_type: FuelTypeParam,
    days_back: int = Query(30, ge=1, le=3650),
    db: AsyncSession = Depends(get_db),
):
    rows = await queries.get_price_history(db, station_id, fuel_type, days_back)
    return [p.as_dict() for p in rows]


@router.get("/prices/cheapest")
async def cheapest_prices(
    fuel_type: FuelTypeParam,
    limit: int = Query(10, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    rows = await queries.get_cheapest_prices(db, fuel_type, limit)
    return [{**p.as_dict(), "station": s.as_dict()} for p, s in rows]


@router.get("/prices/recent")
async def recent_price_changes(
    hours_back: int = Query(24, ge=1, le=720),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    rows = await queries.get_recent_price_changes(db, hours_back, limit)
    return [p.as_dict() for p in rows]


@router.get("/prices/stats")
async def price_stats(
    fuel_type: FuelTypeParam,
    days_back: int = Query(7, ge=1, le=3650),
    db: AsyncSession = Depends(get_db),
):
    stats = await queries.get_price_stats(db, fuel_type, days_back)
    if stats is None:
        return {"found": False}
    return {"found": True, **stats}
