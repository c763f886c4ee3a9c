from datetime import datetime, timedelta

import pytest

from app.db.models.prices import FuelPrice
from app.ingestion.reconciler import PriceReconciler

T0 = datetime(2026, 10, 19, 6, 0, 0)


async def add_price(db, station_id, price, recorded_at, fuel_type="E10"):
    row = FuelPrice(
        station_id=station_id, fuel_type=fuel_type, price=price, recorded_at=recorded_at, source_timestamp="src"
    )
    db.add(row)
    await db.commit()
    return row


def test_should_write_rules():
    r = PriceReconciler()
    prior = FuelPrice(station_id=1, fuel_type="E10", price=139, recorded_at=T0, source_timestamp="")

    assert r.should_write(None, 139, T0)
    assert r.should_write(prior, 140, T0 + timedelta(minutes=1))
    assert not r.should_write(prior, 139, T0 + timedelta(minutes=59))
    assert not r.should_write(prior, 139, T0 + timedelta(hours=1))  # exactly one hour is not older
    assert r.should_write(prior, 139, T0 + timedelta(hours=1, seconds=1))


def test_heartbeat_is_configurable():
    r = PriceReconciler(heartbeat=timedelta(minutes=10))
    prior = FuelPrice(station_id=1, fuel_type="E10", price=139, recorded_at=T0, source_timestamp="")
    assert r.should_write(prior, 139, T0 + timedelta(minutes=11))


@pytest.mark.anyio
async def test_first_observation_is_written(db_session, seeded_stations):
    sid = seeded_stations["ST-1"]
    decision = await PriceReconciler().reconcile(db_session, sid, "E10", 139, "src", now=T0)

    assert decision.write is True
    assert decision.record.id is None
    assert (decision.record.station_id, decision.record.price, decision.record.recorded_at) == (sid, 139, T0)


@pytest.mark.anyio
async def test_unchanged_price_within_an_hour_returns_existing_row(db_session, seeded_stations):
    sid = seeded_stations["ST-1"]
    existing = await add_price(db_session, sid, 139, T0)

    decision = await PriceReconciler().reconcile(db_session, sid, "E10", 139, "src", now=T0 + timedelta(minutes=30))

    assert decision.write is False
    assert decision.record.id == existing.id


@pytest.mark.anyio
async def test_unchanged_price_after_an_hour_is_written_again(db_session, seeded_stations):
    sid = seeded_stations["ST-1"]
    await add_price(db_session, sid, 139, T0)

    decision = await PriceReconciler().reconcile(db_session, sid, "E10", 139, "src", now=T0 + timedelta(minutes=61))

    assert decision.write is True


@pytest.mark.anyio
async def test_changed_price_is_written_and_compared_to_latest_row(db_session, seeded_stations):
    sid = seeded_stations["ST-1"]
    await add_price(db_session, sid, 135, T0 - timedelta(minutes=20))
    await add_price(db_session, sid, 139, T0 - timedelta(minutes=10))

    r = PriceReconciler()
    assert (await r.reconcile(db_session, sid, "E10", 139, "src", now=T0)).write is False
    assert (await r.reconcile(db_session, sid, "E10", 135, "src", now=T0)).write is True


@pytest.mark.anyio
async def test_fuel_types_are_reconciled_separately(db_session, seeded_stations):
    sid = seeded_stations["ST-1"]
    await add_price(db_session, sid, 139, T0, fuel_type="E10")

    decision = await PriceReconciler().reconcile(db_session, sid, "Diesel", 139, "src", now=T0)
    assert decision.write is True
