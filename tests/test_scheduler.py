import asyncio

import pytest

from app.ingestion.scheduler import run_daemon


@pytest.mark.anyio
async def test_daemon_runs_price_syncs_until_max_runs(service, fake_client):
    runs = await run_daemon(service, interval_minutes=0, max_runs=2, sync_stations_on_start=False)

    assert runs == 2
    assert len(fake_client.price_calls) == 2
    assert fake_client.station_calls == 0


@pytest.mark.anyio
async def test_daemon_can_sync_stations_first(service, fake_client):
    await run_daemon(service, interval_minutes=0, max_runs=1, sync_stations_on_start=True)

    assert fake_client.station_calls == 1
    assert len(fake_client.price_calls) == 1


@pytest.mark.anyio
async def test_stop_event_ends_the_wait_early(service, fake_client):
    stop = asyncio.Event()
    original = service.sync_prices

    async def sync_then_stop(since=None):
        result = await original(since)
        stop.set()
        return result

    service.sync_prices = sync_then_stop

    # a long interval: only the stop event can end the wait
    runs = await asyncio.wait_for(
        run_daemon(service, interval_minutes=60, stop_event=stop, sync_stations_on_start=False), timeout=5
    )

    assert runs == 1
    assert service.stop_event is stop


@pytest.mark.anyio
async def test_failed_runs_do_not_stop_the_daemon(service, fake_client, fetch_error):
    fake_client.price_error = fetch_error

    runs = await run_daemon(service, interval_minutes=0, max_runs=3, sync_stations_on_start=False)

    assert runs == 3
    assert [r["status"] for r in await service.recent_runs()] == ["failed"] * 3


@pytest.mark.anyio
async def test_already_stopped_daemon_does_nothing(service, fake_client):
    stop = asyncio.Event()
    stop.set()

    assert await run_daemon(service, interval_minutes=0, stop_event=stop, sync_stations_on_start=True) == 0
    assert fake_client.station_calls == 0
    assert fake_client.price_calls == []
