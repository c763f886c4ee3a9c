import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.base import utcnow
from app.db.repository import insert_prices_batch, upsert_stations_batch
from app.fuelfinder.parsers import StationRecord
from app.ingestion.reconciler import PriceReconciler

logger = logging.getLogger(__name__)


@dataclass
class PricedCandidate:
    """A normalized price whose station has been resolved to an internal id."""

    station_id: int
    fuel_type: str
    price: float
    source_timestamp: str


@dataclass
class WriteResult:
    processed: int = 0
    errored: int = 0
    # set when the stop event ended the run before every chunk was tried
    stopped: bool = False
    remaining: int = 0


@dataclass
class PriceWriteResult(WriteResult):
    written: int = 0
    unchanged: int = 0


def chunked(items: list, size: int):
    size = max(1, size)
    for i in range(0, len(items), size):
        yield items[i : i + size]


class BatchWriter:
    """
    Chunked writes with a fixed-backoff retry per chunk.

    Each chunk runs in its own session and transaction. A chunk that still
    fails after the last attempt is counted as errored and the next chunk
    is processed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        station_chunk_size: int = 50,
        price_chunk_size: int = 50,
        retries: int = 3,
        backoff_seconds: float = 1.0,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.station_chunk_size = station_chunk_size
        self.price_chunk_size = price_chunk_size
        self.retries = max(1, retries)
        self.backoff_seconds = backoff_seconds
        self.stop_event = stop_event

    def _stopping(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    async def _with_retry(self, label: str, op: Callable[[AsyncSession], Awaitable[None]]) -> bool:
        for attempt in range(1, self.retries + 1):
            async with self.session_factory() as db:
                try:
                    await op(db)
                    await db.commit()
                    return True
                except Exception as e:
                    await db.rollback()
                    if attempt >= self.retries:
                        logger.error("%s failed after %d attempts: %s", label, attempt, e, exc_info=True)
                        return False
                    logger.warning("%s failed (attempt %d/%d), retrying: %s", label, attempt, self.retries, e)
            await asyncio.sleep(self.backoff_seconds)
        return False

    async def upsert_stations(self, records: list[StationRecord], now: datetime | None = None) -> WriteResult:
        result = WriteResult()
        total = len(records)
        for i, chunk in enumerate(chunked(records, self.station_chunk_size)):
            if self._stopping():
                result.stopped = True
                result.remaining = total - result.processed - result.errored
                logger.warning("Stop requested, leaving %d stations unwritten", result.remaining)
                break

            async def _op(db: AsyncSession, chunk=chunk) -> None:
                await upsert_stations_batch(db, chunk, now=now or utcnow())

            ok = await self._with_retry(f"Station chunk {i}", _op)
            if ok:
                result.processed += len(chunk)
            else:
                result.errored += len(chunk)
            done = result.processed + result.errored
            if done % 500 == 0 or done == total:
                logger.info("Stations progress: %d/%d", done, total)
        return result

    async def insert_prices(
        self,
        candidates: list[PricedCandidate],
        reconciler: PriceReconciler,
        now: datetime | None = None,
    ) -> PriceWriteResult:
        result = PriceWriteResult()
        total = len(candidates)
        for i, chunk in enumerate(chunked(candidates, self.price_chunk_size)):
            if self._stopping():
                result.stopped = True
                result.remaining = total - result.processed - result.errored
                logger.warning("Stop requested, leaving %d prices unwritten", result.remaining)
                break

            counts = {"written": 0, "unchanged": 0}

            async def _op(db: AsyncSession, chunk=chunk, counts=counts) -> None:
                counts["written"] = counts["unchanged"] = 0
                ts = now or utcnow()
                for c in chunk:
                    decision = await reconciler.reconcile(
                        db, c.station_id, c.fuel_type, c.price, c.source_timestamp, now=ts
                    )
                    if decision.write:
                        # flushed before the next lookup so a repeated key sees it
                        await insert_prices_batch(db, [decision.record])
                        counts["written"] += 1
                    else:
                        counts["unchanged"] += 1

            ok = await self._with_retry(f"Price chunk {i}", _op)
            if ok:
                result.processed += len(chunk)
                result.written += counts["written"]
                result.unchanged += counts["unchanged"]
            else:
                result.errored += len(chunk)
            done = result.processed + result.errored
            if done % 500 == 0 or done == total:
                logger.info("Prices progress: %d/%d", done, total)
        return result
