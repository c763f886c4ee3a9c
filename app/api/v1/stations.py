from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.services import queries

router = APIRouter()


@router.get("/stations/search")
async def search_stations(
    postcode: str | None = Query(None),
    city: str | None = Query(None),
    q: str | None = Query(None, description="postcode, town or station name"),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    if postcode:
        rows = await queries.search_by_postcode(db, postcode, limit)
    elif city:
        rows = await queries.search_by_city(db, city, limit)
    elif q:
        rows = await queries.search_by_location(db, q, limit)
    else:
        raise HTTPException(status_code=422, detail="one of postcode, city or q is required")
    return [s.as_dict() for s in rows]


@router.get("/stations/nearby")
async def stations_nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_miles: float = Query(5.0, gt=0, le=100),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    rows = await queries.search_by_radius(db, lat, lng, radius_miles, limit)
    return [{**s.as_dict(), "distance": round(d, 2)} for s, d in rows]


@router.get("/stations/stale")
async def stale_stations(
    older_than_minutes: int = Query(..., ge=1),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    return [s.as_dict() for s in await queries.get_stale_stations(db, older_than_minutes, limit)]


@router.get("/stations/by-external/{external_id}")
async def station_by_external_id(external_id: str, db: AsyncSession = Depends(get_db)):
    s = await queries.get_station_by_external_id(db, external_id)
    if not s:
        raise HTTPException(status_code=404, detail="Station not found")
    return s.as_dict()


@router.get("/stations/{station_id}")
async def get_station(station_id: int, db: AsyncSession = Depends(get_db)):
    s = await queries.get_station(db, station_id)
    if not s:
        raise HTTPException(status_code=404, detail="Station not found")
    return s.as_dict()


@router.get("/stations")
async def list_stations(limit: int = Query(100, ge=1, le=1000), db: AsyncSession = Depends(get_db)):
    return [s.as_dict() for s in await queries.list_stations(db, limit)]
