# tests/test_admin_sync.py
import pytest


@pytest.mark.anyio
async def test_sync_stations_endpoint(client):
    r = await client.post("/v1/admin/sync/stations")
    assert r.status_code == 200, r.text

    data = r.json()
    assert data["success"] is True
    assert data["stationsFetched"] == 3
    assert data["stationsProcessed"] == 3
    assert data["message"] == "Station metadata synced successfully"


@pytest.mark.anyio
async def test_sync_prices_endpoint_reports_unknown_stations(client):
    await client.post("/v1/admin/sync/stations")

    r = await client.post("/v1/admin/sync/prices")
    assert r.status_code == 200, r.text

    data = r.json()
    assert data["success"] is True
    assert data["pricesProcessed"] == 2
    assert data["stationsNotFound"] == 1


@pytest.mark.anyio
async def test_sync_prices_endpoint_passes_since(client, fake_client):
    r = await client.post("/v1/admin/sync/prices", params={"since": "2026-10-18T00:00:00Z"})
    assert r.status_code == 200, r.text
    assert fake_client.price_calls == ["2026-10-18T00:00:00Z"]


@pytest.mark.anyio
async def test_failed_sync_is_returned_not_raised(client, fake_client, fetch_error):
    fake_client.price_error = fetch_error

    r = await client.post("/v1/admin/sync/prices")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["success"] is False
    assert "batch 3" in data["error"]


@pytest.mark.anyio
async def test_run_log_endpoints(client):
    r = await client.get("/v1/admin/sync/runs/last", params={"sync_type": "stations"})
    assert r.json() == {"found": False}

    await client.post("/v1/admin/sync/stations")
    await client.post("/v1/admin/sync/prices")

    r = await client.get("/v1/admin/sync/runs", params={"limit": 5})
    assert r.status_code == 200, r.text
    runs = r.json()
    assert [run["syncType"] for run in runs] == ["prices", "stations"]
    assert all(run["status"] == "completed" for run in runs)

    r = await client.get("/v1/admin/sync/runs/last", params={"sync_type": "stations"})
    data = r.json()
    assert data["found"] is True
    assert data["stationsProcessed"] == 3
