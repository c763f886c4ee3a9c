import asyncio
import logging
import signal

from app.core.settings import settings
from app.ingestion.service import IngestionService

logger = logging.getLogger(__name__)


def install_stop_handlers(stop_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM ask the daemon to stop after the chunk in flight."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # not supported on this platform / not the main thread
            pass


async def run_daemon(
    svc: IngestionService,
    interval_minutes: float | None = None,
    stop_event: asyncio.Event | None = None,
    *,
    sync_stations_on_start: bool | None = None,
    max_runs: int | None = None,
) -> int:
    """
    Run price syncs every interval until stop_event is set.
    Returns the number of price runs started.
    """
    interval = (interval_minutes if interval_minutes is not None else settings.SYNC_INTERVAL_MINUTES) * 60
    stop_event = stop_event or svc.stop_event or asyncio.Event()
    svc.stop_event = stop_event
    if sync_stations_on_start is None:
        sync_stations_on_start = settings.SYNC_STATIONS_ON_START

    logger.info("Sync daemon starting, interval %.1f minutes", interval / 60)

    if sync_stations_on_start and not stop_event.is_set():
        result = await svc.sync_stations()
        if not result["success"]:
            logger.error("Initial station sync failed: %s", result.get("error"))

    runs = 0
    while not stop_event.is_set():
        runs += 1
        logger.info("Price sync run #%d", runs)
        result = await svc.sync_prices()
        if not result["success"]:
            logger.error("Price sync run #%d failed: %s", runs, result.get("error"))

        if max_runs is not None and runs >= max_runs:
            break
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Sync daemon stopped after %d runs", runs)
    return runs


async def start_scheduler():
    """Background loop started by the API process."""
    svc = IngestionService()
    try:
        await run_daemon(svc)
    except asyncio.CancelledError:
        logger.info("Scheduler cancelled")
        raise
