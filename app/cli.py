"""Command line entry points: fuel-sync stations | prices | daemon | init-db.

Each sync command prints a JSON summary on stdout and exits 0 on success,
1 on failure.
"""

import asyncio
import json
import logging

import typer

from app.core.logging import configure_logging
from app.core.settings import settings

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, no_args_is_help=True, help="Sync UK Fuel Finder stations and prices.")


def _service():
    from app.ingestion.service import IngestionService

    return IngestionService()


def _emit(result: dict) -> None:
    typer.echo(json.dumps(result, indent=2, default=str))
    if not result.get("success"):
        raise typer.Exit(code=1)


async def _prepare() -> None:
    from app.db.init_db import init_db

    await init_db()


@app.callback()
def main(log_level: str = typer.Option(None, "--log-level", help="Overrides LOG_LEVEL")) -> None:
    configure_logging(log_level or settings.LOG_LEVEL)


@app.command("init-db")
def init_db_cmd() -> None:
    """Create the database tables."""
    asyncio.run(_prepare())
    _emit({"success": True, "db": settings.DB_URL})


@app.command()
def stations() -> None:
    """Full station metadata sync (run weekly)."""

    async def _run() -> dict:
        await _prepare()
        return await _service().sync_stations()

    _emit(asyncio.run(_run()))


@app.command()
def prices(
    since: str = typer.Option(None, "--since", help="ISO timestamp; defaults to the last price sync"),
) -> None:
    """Incremental price sync."""

    async def _run() -> dict:
        await _prepare()
        return await _service().sync_prices(since)

    _emit(asyncio.run(_run()))


@app.command()
def daemon(
    interval_minutes: float = typer.Option(None, "--interval-minutes", help="Defaults to SYNC_INTERVAL_MINUTES"),
    stations_first: bool = typer.Option(False, "--stations-first", help="Run a station sync before the first price sync"),
) -> None:
    """Sync prices on an interval until interrupted (Ctrl+C finishes the current chunk)."""
    from app.ingestion.scheduler import install_stop_handlers, run_daemon

    async def _run() -> dict:
        await _prepare()
        stop = asyncio.Event()
        install_stop_handlers(stop)
        runs = await run_daemon(
            _service(),
            interval_minutes,
            stop,
            sync_stations_on_start=stations_first or None,
        )
        return {"success": True, "runs": runs}

    _emit(asyncio.run(_run()))


if __name__ == "__main__":
    app()
