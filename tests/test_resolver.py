import pytest

import app.ingestion.resolver as resolver_mod
from app.ingestion.resolver import resolve_station_ids


@pytest.mark.anyio
async def test_resolves_known_ids_and_omits_unknown(db_session, seeded_stations):
    found = await resolve_station_ids(db_session, ["ST-1", "ST-2", "ST-404", "ST-1", ""])

    assert found == {"ST-1": seeded_stations["ST-1"], "ST-2": seeded_stations["ST-2"]}


@pytest.mark.anyio
async def test_empty_input_makes_no_queries(db_session, monkeypatch):
    calls = []

    async def fake_batch(db, ids):
        calls.append(ids)
        return {}

    monkeypatch.setattr(resolver_mod, "get_station_ids_batch", fake_batch)

    assert await resolve_station_ids(db_session, []) == {}
    assert calls == []


@pytest.mark.anyio
async def test_lookups_are_chunked(db_session, monkeypatch):
    calls = []

    async def fake_batch(db, ids):
        calls.append(list(ids))
        return {i: n for n, i in enumerate(ids)}

    monkeypatch.setattr(resolver_mod, "get_station_ids_batch", fake_batch)

    ids = [f"S-{n:04d}" for n in range(1201)]
    found = await resolve_station_ids(db_session, ids)

    assert [len(c) for c in calls] == [500, 500, 201]
    assert len(found) == 1201


@pytest.mark.anyio
async def test_chunk_size_is_capped_at_500(db_session, monkeypatch):
    calls = []

    async def fake_batch(db, ids):
        calls.append(len(ids))
        return {}

    monkeypatch.setattr(resolver_mod, "get_station_ids_batch", fake_batch)

    await resolve_station_ids(db_session, [f"S-{n}" for n in range(600)], chunk_size=10_000)
    assert calls == [500, 100]

    calls.clear()
    await resolve_station_ids(db_session, [f"S-{n}" for n in range(25)], chunk_size=10)
    assert calls == [10, 10, 5]
