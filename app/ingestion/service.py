import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.settings import SyncOptions
from app.db.models.sync import LAST_PRICE_SYNC, LAST_STATION_SYNC
from app.db import repository as repo
from app.fuelfinder.client import FuelFinderClient
from app.fuelfinder.parsers import normalize_price_records, normalize_station
from app.ingestion.lock import INGESTION_LOCK
from app.ingestion.reconciler import PriceReconciler
from app.ingestion.resolver import resolve_station_ids
from app.ingestion.writer import BatchWriter, PricedCandidate, WriteResult

logger = logging.getLogger(__name__)


def iso_utc(dt: datetime | None = None) -> str:
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _error_text(e: Exception) -> str:
    return str(e) or e.__class__.__name__


class IngestionService:
    """
    Runs the two sync flows against the Fuel Finder API:

    - sync_stations: full sweep of /pfs, upserted by external id (weekly)
    - sync_prices: /pfs/fuel-prices since the last watermark, reconciled
      into the append-only price history (every 30 minutes or so)

    Every run is recorded in sync_log and ends completed or failed. The
    public methods never raise; they return a result dict with success
    and counts.
    """

    def __init__(
        self,
        client: FuelFinderClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        options: SyncOptions | None = None,
        reconciler: PriceReconciler | None = None,
        stop_event: asyncio.Event | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.options = options or SyncOptions.from_settings()
        self.client = client or FuelFinderClient(
            page_size=self.options.page_size, max_batches=self.options.max_batches
        )
        if session_factory is None:
            from app.db.session import SessionLocal

            session_factory = SessionLocal
        self.session_factory = session_factory
        self.reconciler = reconciler or PriceReconciler(timedelta(minutes=self.options.heartbeat_minutes))
        self.stop_event = stop_event
        self.lock = lock or INGESTION_LOCK

    def _writer(self) -> BatchWriter:
        return BatchWriter(
            self.session_factory,
            station_chunk_size=self.options.station_chunk_size,
            price_chunk_size=self.options.price_chunk_size,
            retries=self.options.write_retries,
            backoff_seconds=self.options.retry_backoff_seconds,
            stop_event=self.stop_event,
        )

    # ------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------
    async def _start(self, sync_type: str, metadata: dict) -> int:
        async with self.session_factory() as db:
            run = await repo.start_sync_run(db, sync_type, metadata)
            return run.id

    async def _complete(self, run_id: int, stations: int, prices: int, metadata: dict | None = None) -> None:
        async with self.session_factory() as db:
            await repo.complete_sync_run(db, run_id, stations, prices, metadata)

    async def _fail(self, run_id: int, message: str) -> None:
        try:
            async with self.session_factory() as db:
                await repo.fail_sync_run(db, run_id, message)
        except Exception:
            logger.exception("Could not mark sync run %s as failed", run_id)

    async def _interrupted(
        self, run_id: int, kind: str, result: WriteResult, since: str | None = None, not_found: int = 0
    ) -> dict:
        """A stop request cut the write short: fail the run and leave the watermark alone."""
        message = f"Interrupted: {result.remaining} {kind} left unwritten"
        logger.warning("Sync run %d %s", run_id, message.lower())
        await self._fail(run_id, message)
        out = {
            "success": False,
            "syncId": run_id,
            "interrupted": True,
            "error": message,
        }
        if kind == "stations":
            out.update(
                stationsProcessed=result.processed,
                stationsErrored=result.errored,
                stationsRemaining=result.remaining,
            )
        else:
            out.update(
                since=since,
                pricesProcessed=result.processed,
                pricesErrored=result.errored,
                pricesRemaining=result.remaining,
                stationsNotFound=not_found,
            )
        return out

    async def _set_state(self, key: str, value: str) -> None:
        async with self.session_factory() as db:
            await repo.set_sync_state(db, key, value)

    # ------------------------------------------------------------
    # Stations
    # ------------------------------------------------------------
    async def sync_stations(self) -> dict:
        async with self.lock:
            return await self._sync_stations()

    async def _sync_stations(self) -> dict:
        try:
            run_id = await self._start("stations", {"endpoint": "getPFSInfo"})
        except Exception as e:
            logger.error("Could not record station sync start: %s", e, exc_info=True)
            return {"success": False, "syncId": None, "stationsProcessed": 0, "error": _error_text(e)}
        logger.info("Starting station metadata sync (run %d)", run_id)
        try:
            raw = await self.client.fetch_stations(allow_partial=True)

            records = []
            skipped = 0
            for item in raw:
                rec = normalize_station(item)
                if rec is None:
                    skipped += 1
                    continue
                records.append(rec)

            result = await self._writer().upsert_stations(records)
            if result.stopped:
                return await self._interrupted(run_id, "stations", result)

            await self._set_state(LAST_STATION_SYNC, iso_utc())
            await self._complete(
                run_id,
                result.processed,
                0,
                {"fetched": len(raw), "skipped": skipped, "errored": result.errored},
            )
        except Exception as e:
            logger.error("Station sync failed: %s", e, exc_info=True)
            await self._fail(run_id, _error_text(e))
            return {"success": False, "syncId": run_id, "stationsProcessed": 0, "error": _error_text(e)}

        logger.info(
            "Station sync complete: %d stations (%d failed, %d skipped)",
            result.processed, result.errored, skipped,
        )
        return {
            "success": True,
            "syncId": run_id,
            "stationsFetched": len(raw),
            "stationsProcessed": result.processed,
            "stationsErrored": result.errored,
            "stationsSkipped": skipped,
            "message": "Station metadata synced successfully",
        }

    # ------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------
    async def sync_prices(self, since: str | datetime | None = None) -> dict:
        async with self.lock:
            return await self._sync_prices(since)

    async def _price_watermark(self, since: str | datetime | None) -> str:
        if isinstance(since, datetime):
            return iso_utc(since)
        if since:
            return since
        async with self.session_factory() as db:
            last = await repo.get_sync_state(db, LAST_PRICE_SYNC)
        if last:
            return last
        return iso_utc(datetime.now(timezone.utc) - timedelta(hours=self.options.default_lookback_hours))

    async def _sync_prices(self, since: str | datetime | None = None) -> dict:
        try:
            run_id = await self._start(
                "prices",
                {"endpoint": "getIncrementalPFSFuelPrices", "since": iso_utc(since) if isinstance(since, datetime) else since},
            )
        except Exception as e:
            logger.error("Could not record price sync start: %s", e, exc_info=True)
            return {"success": False, "syncId": None, "pricesProcessed": 0, "stationsNotFound": 0, "error": _error_text(e)}
        logger.info("Starting incremental price sync (run %d)", run_id)
        try:
            watermark = await self._price_watermark(since)
            logger.info("Fetching prices changed since %s", watermark)

            raw = await self.client.fetch_prices(since=watermark)

            candidates, stats = normalize_price_records(
                raw,
                min_pence=self.options.price_min,
                max_pence=self.options.price_max,
                decimals=self.options.price_decimals,
            )
            if stats.total:
                logger.info("Skipped %d price entries during normalization: %s", stats.total, stats.as_dict())

            async with self.session_factory() as db:
                station_ids = await resolve_station_ids(
                    db,
                    (c.station_external_id for c in candidates),
                    chunk_size=self.options.lookup_chunk_size,
                )

            priced: list[PricedCandidate] = []
            not_found = 0
            unknown: set[str] = set()
            for c in candidates:
                sid = station_ids.get(c.station_external_id)
                if sid is None:
                    not_found += 1
                    unknown.add(c.station_external_id)
                    continue
                priced.append(PricedCandidate(sid, c.fuel_type, c.price, c.source_timestamp))

            result = await self._writer().insert_prices(priced, self.reconciler)
            if result.stopped:
                # watermark stays put so the unwritten prices are fetched again
                return await self._interrupted(run_id, "prices", result, since=watermark, not_found=not_found)

            await self._set_state(LAST_PRICE_SYNC, iso_utc())
            await self._complete(
                run_id,
                0,
                result.processed,
                {
                    "since": watermark,
                    "fetched": len(raw),
                    "written": result.written,
                    "unchanged": result.unchanged,
                    "errored": result.errored,
                    "stationsNotFound": not_found,
                    "skipped": stats.as_dict(),
                },
            )
        except Exception as e:
            logger.error("Price sync failed: %s", e, exc_info=True)
            await self._fail(run_id, _error_text(e))
            return {
                "success": False,
                "syncId": run_id,
                "pricesProcessed": 0,
                "stationsNotFound": 0,
                "error": _error_text(e),
            }

        logger.info(
            "Price sync complete: %d processed, %d new rows, %d unchanged, %d failed",
            result.processed, result.written, result.unchanged, result.errored,
        )
        if not_found:
            logger.warning("%d prices skipped (%d stations not found), run a station sync", not_found, len(unknown))
        return {
            "success": True,
            "syncId": run_id,
            "since": watermark,
            "pricesFetched": len(raw),
            "pricesProcessed": result.processed,
            "pricesWritten": result.written,
            "pricesUnchanged": result.unchanged,
            "pricesErrored": result.errored,
            "stationsNotFound": not_found,
            "unknownStations": len(unknown),
            "skipped": stats.as_dict(),
            "message": "Price data synced successfully",
        }

    async def sync_all(self) -> dict:
        async with self.lock:
            stations = await self._sync_stations()
            prices = await self._sync_prices()
        return {
            "success": stations["success"] and prices["success"],
            "stations": stations,
            "prices": prices,
        }

    # ------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------
    async def recent_runs(self, limit: int = 20) -> list[dict]:
        async with self.session_factory() as db:
            return [r.as_dict() for r in await repo.recent_sync_runs(db, limit)]

    async def last_successful_run(self, sync_type: str) -> dict | None:
        async with self.session_factory() as db:
            run = await repo.last_successful_sync_run(db, sync_type)
            return run.as_dict() if run else None
