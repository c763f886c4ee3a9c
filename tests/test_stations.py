# tests/test_stations.py
import pytest


@pytest.fixture()
async def synced(client):
    r = await client.post("/v1/admin/sync/stations")
    assert r.status_code == 200, r.text


@pytest.mark.anyio
async def test_search_by_postcode_normalizes_input(client, synced):
    r = await client.get("/v1/stations/search", params={"postcode": "wf92wf"})
    assert r.status_code == 200, r.text
    assert [s["externalId"] for s in r.json()] == ["ST-1"]
    assert r.json()[0]["postcode"] == "WF9 2WF"


@pytest.mark.anyio
async def test_search_by_city_is_case_insensitive(client, synced):
    r = await client.get("/v1/stations/search", params={"city": "HEMSWORTH"})
    assert [s["name"] for s in r.json()] == ["Tesco Hemsworth", "Village Garage"]


@pytest.mark.anyio
async def test_free_text_search(client, synced):
    r = await client.get("/v1/stations/search", params={"q": "SW1A"})
    assert [s["externalId"] for s in r.json()] == ["ST-2"]

    r = await client.get("/v1/stations/search", params={"q": "garage"})
    assert [s["externalId"] for s in r.json()] == ["ST-3"]


@pytest.mark.anyio
async def test_search_requires_a_criterion(client):
    r = await client.get("/v1/stations/search")
    assert r.status_code == 422


@pytest.mark.anyio
async def test_nearby_is_sorted_by_distance(client, synced):
    r = await client.get("/v1/stations/nearby", params={"lat": 53.61, "lng": -1.35, "radius_miles": 2})
    assert r.status_code == 200, r.text
    data = r.json()
    assert [s["externalId"] for s in data] == ["ST-1", "ST-3"]
    assert data[0]["distance"] == 0
    assert 0 < data[1]["distance"] < 1


@pytest.mark.anyio
async def test_lookup_by_id_and_external_id(client, synced):
    r = await client.get("/v1/stations/by-external/ST-2")
    assert r.status_code == 200, r.text
    station = r.json()
    assert station["city"] == "London"

    r = await client.get(f"/v1/stations/{station['id']}")
    assert r.json()["externalId"] == "ST-2"

    assert (await client.get("/v1/stations/by-external/ST-404")).status_code == 404
    assert (await client.get("/v1/stations/99999")).status_code == 404


@pytest.mark.anyio
async def test_list_and_stale(client, synced):
    r = await client.get("/v1/stations")
    assert len(r.json()) == 3

    r = await client.get("/v1/stations/stale", params={"older_than_minutes": 60})
    assert r.json() == []
