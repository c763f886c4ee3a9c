from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import utcnow
from app.db.models.prices import FuelPrice
from app.db.repository import get_most_recent_price


@dataclass
class ReconcileDecision:
    write: bool
    record: FuelPrice


class PriceReconciler:
    """
    Decides whether an observation becomes a new history row.

    A row is written when there is no prior row for (station, fuel type),
    the price changed, or the prior row is older than the heartbeat
    interval. Otherwise the prior row stays current.
    """

    def __init__(self, heartbeat: timedelta = timedelta(hours=1)) -> None:
        self.heartbeat = heartbeat

    def should_write(self, prior: FuelPrice | None, price: float, now: datetime) -> bool:
        if prior is None:
            return True
        if float(prior.price) != float(price):
            return True
        return now - prior.recorded_at > self.heartbeat

    async def reconcile(
        self,
        db: AsyncSession,
        station_id: int,
        fuel_type: str,
        price: float,
        source_timestamp: str,
        now: datetime | None = None,
    ) -> ReconcileDecision:
        now = now or utcnow()
        prior = await get_most_recent_price(db, station_id, fuel_type)
        if not self.should_write(prior, price, now):
            return ReconcileDecision(write=False, record=prior)
        return ReconcileDecision(
            write=True,
            record=FuelPrice(
                station_id=station_id,
                fuel_type=fuel_type,
                price=price,
                recorded_at=now,
                source_timestamp=source_timestamp,
            ),
        )
