# tests/conftest.py
import asyncio
import os
import tempfile

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import get_ingestion_service
from app.core.settings import SyncOptions
from app.db.base import Base
from app.db.session import get_db, make_engine
from app.fuelfinder.errors import FetchError
from app.ingestion.service import IngestionService
from app.main import app  # also imports the models, registering their tables


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def test_db_url():
    # Use a real file (NOT :memory:) because every sync chunk opens its own session.
    fd, path = tempfile.mkstemp(prefix="test_fuel_", suffix=".db")
    os.close(fd)
    yield f"sqlite+aiosqlite:///{path}"
    for suffix in ("", "-wal", "-shm"):
        try:
            os.remove(path + suffix)
        except OSError:
            pass


@pytest.fixture()
async def test_engine(test_db_url):
    engine = make_engine(test_db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def session_factory(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


class FakeFuelFinderClient:
    """Stands in for FuelFinderClient; serves canned payloads."""

    def __init__(self, stations=None, prices=None):
        self.stations = list(stations or [])
        self.prices = list(prices or [])
        self.station_error: Exception | None = None
        self.price_error: Exception | None = None
        self.price_calls: list = []
        self.station_calls = 0

    async def fetch_stations(self, *, allow_partial: bool = True):
        self.station_calls += 1
        if self.station_error:
            raise self.station_error
        return list(self.stations)

    async def fetch_prices(self, since=None):
        self.price_calls.append(since)
        if self.price_error:
            raise self.price_error
        return list(self.prices)


RAW_STATIONS = [
    {
        "node_id": "ST-1",
        "trading_name": "Tesco Hemsworth",
        "brand_name": "TESCO",
        "location": {
            "address_line_1": "Barnsley Road",
            "city": "Hemsworth",
            "county": "West Yorkshire",
            "postcode": "wf92wf",
            "latitude": 53.6100,
            "longitude": -1.3500,
        },
        "amenities": ["car_wash", "shop"],
    },
    {
        "node_id": "ST-2",
        "trading_name": "Shell Westminster",
        "brand_name": "SHELL",
        "location": {
            "address_line_1": "1 Parliament Sq",
            "city": "London",
            "postcode": "SW1A1AA",
            "latitude": 51.5010,
            "longitude": -0.1250,
        },
    },
    {
        "node_id": "ST-3",
        "trading_name": "Village Garage",
        "location": {"address_line_1": "Main St", "city": "Hemsworth", "latitude": 53.6120, "longitude": -1.3520},
    },
]

RAW_PRICES = [
    {
        "node_id": "ST-1",
        "fuel_prices": [
            {"fuel_type": "E10", "price": "'0139.9000", "price_last_updated": "2026-10-19T06:00:00Z"},
        ],
    },
    {
        "node_id": "ST-2",
        "fuel_prices": [
            {"fuel_type": "B7_STANDARD", "price": "0149.9000", "price_last_updated": "2026-10-19T06:05:00Z"},
        ],
    },
    {
        "node_id": "ST-404",
        "fuel_prices": [
            {"fuel_type": "E10", "price": "0135.9000", "price_last_updated": "2026-10-19T06:10:00Z"},
        ],
    },
]


@pytest.fixture()
def fake_client():
    return FakeFuelFinderClient(RAW_STATIONS, RAW_PRICES)


@pytest.fixture()
def sync_options():
    return SyncOptions(retry_backoff_seconds=0)


@pytest.fixture()
def service(fake_client, session_factory, sync_options):
    return IngestionService(
        client=fake_client,
        session_factory=session_factory,
        options=sync_options,
        lock=asyncio.Lock(),
    )


@pytest.fixture()
async def client(session_factory, service):
    # Override DB + ingestion dependencies
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_ingestion_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture()
def fetch_error():
    return FetchError(3, status=503, body="upstream unavailable")


@pytest.fixture()
async def seeded_stations(session_factory):
    """RAW_STATIONS written to the store; returns {external_id: id}."""
    from app.db.repository import upsert_stations_batch
    from app.fuelfinder.parsers import normalize_station

    records = [normalize_station(r) for r in RAW_STATIONS]
    async with session_factory() as db:
        ids = await upsert_stations_batch(db, records)
        await db.commit()
    return {r.external_id: i for r, i in zip(records, ids)}
