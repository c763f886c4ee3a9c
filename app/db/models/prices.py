from datetime import datetime
from sqlalchemy import Integer, Float, DateTime, String, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, utcnow


class FuelPrice(Base):
    """
    Append-only price history.
    Rows are only ever inserted; the newest row per (station_id, fuel_type)
    is the current price.
    """
    __tablename__ = "fuel_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    station_id: Mapped[int] = mapped_column(Integer, ForeignKey("stations.id"), nullable=False)
    fuel_type: Mapped[str] = mapped_column(String(16), index=True, nullable=False)

    price: Mapped[float] = mapped_column(Float, nullable=False)  # pence per litre
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True, nullable=False)
    source_timestamp: Mapped[str] = mapped_column(String, default="", nullable=False)  # verbatim from API

    __table_args__ = (
        Index("ix_fuel_prices_station_fuel_time", "station_id", "fuel_type", "recorded_at"),
    )

    def as_dict(self) -> dict:
        price = self.price
        if price is not None and float(price).is_integer():
            price = int(price)
        return {
            "id": self.id,
            "stationId": self.station_id,
            "fuelType": self.fuel_type,
            "price": price,
            "recordedAt": self.recorded_at.isoformat() if self.recorded_at else None,
            "sourceTimestamp": self.source_timestamp,
        }
