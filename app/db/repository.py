from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import utcnow
from app.db.models.prices import FuelPrice
from app.db.models.stations import Station
from app.db.models.sync import SYNC_TYPES, SyncRun, SyncState
from app.fuelfinder.parsers import StationRecord

STATION_FIELDS = (
    "name",
    "brand",
    "address_line1",
    "address_line2",
    "city",
    "county",
    "postcode",
    "latitude",
    "longitude",
    "amenities",
)


# ------------------------------------------------------------
# Stations
# ------------------------------------------------------------
async def upsert_stations_batch(
    db: AsyncSession, records: list[StationRecord], now: datetime | None = None
) -> list[int]:
    """
    Insert or overwrite stations keyed by external_id. Flushes but does not
    commit. Returns internal ids in input order.
    """
    now = now or utcnow()
    ext_ids = list({r.external_id for r in records})
    existing: dict[str, Station] = {}
    if ext_ids:
        q = await db.execute(select(Station).where(Station.external_id.in_(ext_ids)))
        existing = {s.external_id: s for s in q.scalars().all()}

    rows: list[Station] = []
    for rec in records:
        data = rec.as_dict()
        obj = existing.get(rec.external_id)
        if obj:
            for k in STATION_FIELDS:
                setattr(obj, k, data[k])
            obj.last_synced_at = now
        else:
            obj = Station(external_id=rec.external_id, last_synced_at=now, **{k: data[k] for k in STATION_FIELDS})
            db.add(obj)
            existing[rec.external_id] = obj
        rows.append(obj)

    await db.flush()
    return [r.id for r in rows]


async def get_station_ids_batch(db: AsyncSession, external_ids: list[str]) -> dict[str, int]:
    if not external_ids:
        return {}
    q = await db.execute(
        select(Station.external_id, Station.id).where(Station.external_id.in_(list(external_ids)))
    )
    return {ext: sid for ext, sid in q.all()}


# ------------------------------------------------------------
# Prices
# ------------------------------------------------------------
async def get_most_recent_price(db: AsyncSession, station_id: int, fuel_type: str) -> FuelPrice | None:
    q = await db.execute(
        select(FuelPrice)
        .where(FuelPrice.station_id == station_id, FuelPrice.fuel_type == fuel_type)
        .order_by(FuelPrice.recorded_at.desc(), FuelPrice.id.desc())
        .limit(1)
    )
    return q.scalar_one_or_none()


async def insert_prices_batch(db: AsyncSession, rows: list[FuelPrice]) -> list[FuelPrice]:
    db.add_all(rows)
    await db.flush()
    return rows


# ------------------------------------------------------------
# Sync state / run log
# ------------------------------------------------------------
async def get_sync_state(db: AsyncSession, key: str) -> str | None:
    obj = await db.get(SyncState, key)
    return obj.value if obj else None


async def set_sync_state(db: AsyncSession, key: str, value: str) -> None:
    now = utcnow()
    obj = await db.get(SyncState, key)
    if obj:
        obj.value = value
        obj.updated_at = now
    else:
        db.add(SyncState(key=key, value=value, updated_at=now))
    await db.commit()


async def start_sync_run(db: AsyncSession, sync_type: str, metadata: dict | None = None) -> SyncRun:
    if sync_type not in SYNC_TYPES:
        raise ValueError(f"unknown sync type: {sync_type}")
    run = SyncRun(sync_type=sync_type, status="started", started_at=utcnow(), run_metadata=metadata)
    db.add(run)
    await db.commit()
    return run


async def complete_sync_run(
    db: AsyncSession,
    run_id: int,
    stations_processed: int = 0,
    prices_processed: int = 0,
    metadata: dict | None = None,
) -> None:
    run = await db.get(SyncRun, run_id)
    if run is None or run.status != "started":
        return
    run.status = "completed"
    run.completed_at = utcnow()
    run.stations_processed = stations_processed
    run.prices_processed = prices_processed
    if metadata:
        run.run_metadata = {**(run.run_metadata or {}), **metadata}
    await db.commit()


async def fail_sync_run(db: AsyncSession, run_id: int, error_message: str) -> None:
    run = await db.get(SyncRun, run_id)
    if run is None or run.status != "started":
        return
    run.status = "failed"
    run.completed_at = utcnow()
    run.error_message = error_message
    await db.commit()


async def recent_sync_runs(db: AsyncSession, limit: int = 20) -> list[SyncRun]:
    q = await db.execute(select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(limit))
    return list(q.scalars().all())


async def last_successful_sync_run(db: AsyncSession, sync_type: str) -> SyncRun | None:
    q = await db.execute(
        select(SyncRun)
        .where(SyncRun.sync_type == sync_type, SyncRun.status == "completed")
        .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
        .limit(1)
    )
    return q.scalar_one_or_none()
