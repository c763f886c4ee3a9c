from datetime import datetime
from sqlalchemy import Integer, String, DateTime, Float
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from app.db.base import Base, utcnow


class Station(Base):
    __tablename__ = "stations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)  # node_id

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    brand: Mapped[str | None] = mapped_column(String(200), nullable=True)

    address_line1: Mapped[str] = mapped_column(String(200), nullable=False)
    address_line2: Mapped[str | None] = mapped_column(String(200), nullable=True)
    city: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    county: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postcode: Mapped[str] = mapped_column(String(16), index=True, nullable=False)  # "WF9 2WF" or "UNKNOWN"

    latitude: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    amenities: Mapped[list | None] = mapped_column(JSON, nullable=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "externalId": self.external_id,
            "name": self.name,
            "brand": self.brand,
            "addressLine1": self.address_line1,
            "addressLine2": self.address_line2,
            "city": self.city,
            "county": self.county,
            "postcode": self.postcode,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "amenities": self.amenities,
            "lastSyncedAt": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }
