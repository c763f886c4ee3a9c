import math
from datetime import timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import utcnow
from app.db.models.prices import FuelPrice
from app.db.models.stations import Station
from app.fuelfinder.parsers import is_valid_postcode_format, normalize_postcode, outward_code

EARTH_RADIUS_MILES = 3959.0


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _latest_by(rows: list[FuelPrice], key) -> dict:
    latest: dict = {}
    for p in rows:
        k = key(p)
        cur = latest.get(k)
        if cur is None or (p.recorded_at, p.id) > (cur.recorded_at, cur.id):
            latest[k] = p
    return latest


# ------------------------------------------------------------
# Stations
# ------------------------------------------------------------
async def search_by_postcode(db: AsyncSession, postcode: str, limit: int = 50) -> list[Station]:
    """Exact match on the normalized postcode, or anything in the same outward code."""
    normalized = normalize_postcode(postcode)
    if not normalized:
        return []
    outward = outward_code(normalized)
    q = await db.execute(
        select(Station)
        .where(or_(Station.postcode == normalized, Station.postcode.like(f"{outward} %")))
        .order_by(Station.postcode, Station.name)
        .limit(limit)
    )
    return list(q.scalars().all())


async def search_by_city(db: AsyncSession, city: str, limit: int = 50) -> list[Station]:
    city = (city or "").strip()
    if not city:
        return []
    q = await db.execute(
        select(Station).where(func.lower(Station.city) == city.lower()).order_by(Station.name).limit(limit)
    )
    return list(q.scalars().all())


async def search_by_location(db: AsyncSession, text: str, limit: int = 50) -> list[Station]:
    """
    Free-text search box: postcodes (full or outward code) go to the
    postcode search, anything else matches city, name or address.
    """
    text = (text or "").strip()
    if not text:
        return []
    looks_like_outward = len(text) <= 4 and any(ch.isdigit() for ch in text) and text[0].isalpha()
    if is_valid_postcode_format(text) or looks_like_outward:
        found = await search_by_postcode(db, text, limit)
        if found:
            return found

    pattern = f"%{text.lower()}%"
    q = await db.execute(
        select(Station)
        .where(
            or_(
                func.lower(Station.city).like(pattern),
                func.lower(Station.name).like(pattern),
                func.lower(Station.address_line1).like(pattern),
                func.lower(Station.postcode).like(pattern),
            )
        )
        .order_by(Station.name)
        .limit(limit)
    )
    return list(q.scalars().all())


async def search_by_radius(
    db: AsyncSession, latitude: float, longitude: float, radius_miles: float, limit: int = 50
) -> list[tuple[Station, float]]:
    # bounding box first, ~69 miles per degree of latitude
    dlat = radius_miles / 69.0
    dlng = radius_miles / max(1e-6, 69.0 * math.cos(math.radians(latitude)))
    q = await db.execute(
        select(Station)
        .where(Station.latitude.between(latitude - dlat, latitude + dlat))
        .where(Station.longitude.between(longitude - dlng, longitude + dlng))
    )
    out = []
    for s in q.scalars().all():
        d = haversine_miles(latitude, longitude, s.latitude, s.longitude)
        if d <= radius_miles:
            out.append((s, d))
    out.sort(key=lambda x: x[1])
    return out[:limit]


async def get_station(db: AsyncSession, station_id: int) -> Station | None:
    return await db.get(Station, station_id)


async def get_station_by_external_id(db: AsyncSession, external_id: str) -> Station | None:
    q = await db.execute(select(Station).where(Station.external_id == external_id))
    return q.scalar_one_or_none()


async def list_stations(db: AsyncSession, limit: int = 100) -> list[Station]:
    q = await db.execute(select(Station).order_by(Station.id).limit(limit))
    return list(q.scalars().all())


async def get_stale_stations(db: AsyncSession, older_than_minutes: int, limit: int = 100) -> list[Station]:
    cutoff = utcnow() - timedelta(minutes=older_than_minutes)
    q = await db.execute(
        select(Station).where(Station.last_synced_at < cutoff).order_by(Station.last_synced_at).limit(limit)
    )
    return list(q.scalars().all())


# ------------------------------------------------------------
# Prices
# ------------------------------------------------------------
async def get_current_prices(db: AsyncSession, station_id: int) -> list[FuelPrice]:
    """Most recent observation per fuel type for one station."""
    ranked = (
        select(
            FuelPrice.id,
            func.row_number()
            .over(
                partition_by=FuelPrice.fuel_type,
                order_by=(FuelPrice.recorded_at.desc(), FuelPrice.id.desc()),
            )
            .label("rn"),
        )
        .where(FuelPrice.station_id == station_id)
        .subquery()
    )
    q = await db.execute(
        select(FuelPrice)
        .join(ranked, ranked.c.id == FuelPrice.id)
        .where(ranked.c.rn == 1)
        .order_by(FuelPrice.fuel_type)
    )
    return list(q.scalars().all())


async def get_price_history(db: AsyncSession, station_id: int, fuel_type: str, days_back: int = 30) -> list[FuelPrice]:
    cutoff = utcnow() - timedelta(days=days_back)
    q = await db.execute(
        select(FuelPrice)
        .where(
            FuelPrice.station_id == station_id,
            FuelPrice.fuel_type == fuel_type,
            FuelPrice.recorded_at >= cutoff,
        )
        .order_by(FuelPrice.recorded_at.desc(), FuelPrice.id.desc())
    )
    return list(q.scalars().all())


async def get_cheapest_prices(
    db: AsyncSession, fuel_type: str, limit: int = 10, hours_back: int = 24
) -> list[tuple[FuelPrice, Station]]:
    """Current price per station for a fuel type, cheapest first."""
    cutoff = utcnow() - timedelta(hours=hours_back)
    q = await db.execute(
        select(FuelPrice).where(FuelPrice.fuel_type == fuel_type, FuelPrice.recorded_at >= cutoff)
    )
    latest = _latest_by(list(q.scalars().all()), lambda p: p.station_id)
    cheapest = sorted(latest.values(), key=lambda p: (p.price, p.station_id))[:limit]
    if not cheapest:
        return []

    sq = await db.execute(select(Station).where(Station.id.in_([p.station_id for p in cheapest])))
    stations = {s.id: s for s in sq.scalars().all()}
    return [(p, stations[p.station_id]) for p in cheapest if p.station_id in stations]


async def get_recent_price_changes(db: AsyncSession, hours_back: int = 24, limit: int = 50) -> list[FuelPrice]:
    cutoff = utcnow() - timedelta(hours=hours_back)
    q = await db.execute(
        select(FuelPrice)
        .where(FuelPrice.recorded_at >= cutoff)
        .order_by(FuelPrice.recorded_at.desc(), FuelPrice.id.desc())
        .limit(limit)
    )
    return list(q.scalars().all())


async def get_price_stats(db: AsyncSession, fuel_type: str, days_back: int = 7) -> dict | None:
    cutoff = utcnow() - timedelta(days=days_back)
    q = await db.execute(
        select(FuelPrice.price).where(FuelPrice.fuel_type == fuel_type, FuelPrice.recorded_at >= cutoff)
    )
    values = sorted(float(v) for v in q.scalars().all())
    if not values:
        return None

    n = len(values)
    mid = n // 2
    median = (values[mid - 1] + values[mid]) / 2 if n % 2 == 0 else values[mid]
    return {
        "fuelType": fuel_type,
        "count": n,
        "min": values[0],
        "max": values[-1],
        "avg": sum(values) / n,
        "median": median,
        "daysBack": days_back,
    }
