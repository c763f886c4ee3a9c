from datetime import datetime
from sqlalchemy import Integer, String, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from app.db.base import Base, utcnow

SYNC_TYPES = ("stations", "prices", "full", "incremental", "postcode")

LAST_STATION_SYNC = "last_station_sync"
LAST_PRICE_SYNC = "last_price_sync"


class SyncRun(Base):
    __tablename__ = "sync_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="started", nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    stations_processed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    prices_processed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    run_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    __table_args__ = (Index("ix_sync_log_type_status", "sync_type", "status"),)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "syncType": self.sync_type,
            "status": self.status,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "stationsProcessed": self.stations_processed,
            "pricesProcessed": self.prices_processed,
            "errorMessage": self.error_message,
            "metadata": self.run_metadata,
        }


class SyncState(Base):
    __tablename__ = "sync_state"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
