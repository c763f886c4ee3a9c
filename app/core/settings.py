from dataclasses import dataclass

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    FUEL_FINDER_CLIENT_ID: str = ""
    FUEL_FINDER_CLIENT_SECRET: str = ""
    FUEL_FINDER_API_URL: str = "https://www.fuel-finder.service.gov.uk/api/v1"
    FUEL_FINDER_TOKEN_URL: str = "https://www.fuel-finder.service.gov.uk/api/v1/oauth/generate_access_token"
    FUEL_FINDER_TIMEOUT_SECONDS: float = 60.0

    DB_URL: str = "sqlite+aiosqlite:///./fuel.db"

    # upstream returns at most this many records per batch-number page
    SYNC_PAGE_SIZE: int = 500
    SYNC_MAX_BATCHES: int | None = None

    SYNC_STATION_CHUNK_SIZE: int = 50
    SYNC_PRICE_CHUNK_SIZE: int = 50
    SYNC_LOOKUP_CHUNK_SIZE: int = 500
    SYNC_WRITE_RETRIES: int = 3
    SYNC_RETRY_BACKOFF_SECONDS: float = 1.0

    PRICE_MIN_PENCE: float = 50
    PRICE_MAX_PENCE: float = 300
    PRICE_DECIMALS: int = 0  # 0 => integer pence, 1 => 126.9
    PRICE_HEARTBEAT_MINUTES: int = 60
    PRICE_DEFAULT_LOOKBACK_HOURS: int = 24

    SYNC_INTERVAL_MINUTES: int = 30
    SYNC_STATIONS_ON_START: bool = False
    SYNC_SCHEDULER_ENABLED: bool = False
    CRON_SECRET: str | None = None

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()


@dataclass(frozen=True)
class SyncOptions:
    """Tunables for one sync engine, detached from the environment."""

    page_size: int = 500
    max_batches: int | None = None
    station_chunk_size: int = 50
    price_chunk_size: int = 50
    lookup_chunk_size: int = 500
    write_retries: int = 3
    retry_backoff_seconds: float = 1.0
    price_min: float = 50
    price_max: float = 300
    price_decimals: int = 0
    heartbeat_minutes: int = 60
    default_lookback_hours: int = 24

    @classmethod
    def from_settings(cls, s: Settings | None = None) -> "SyncOptions":
        s = s or settings
        return cls(
            page_size=s.SYNC_PAGE_SIZE,
            max_batches=s.SYNC_MAX_BATCHES,
            station_chunk_size=s.SYNC_STATION_CHUNK_SIZE,
            price_chunk_size=s.SYNC_PRICE_CHUNK_SIZE,
            lookup_chunk_size=s.SYNC_LOOKUP_CHUNK_SIZE,
            write_retries=s.SYNC_WRITE_RETRIES,
            retry_backoff_seconds=s.SYNC_RETRY_BACKOFF_SECONDS,
            price_min=s.PRICE_MIN_PENCE,
            price_max=s.PRICE_MAX_PENCE,
            price_decimals=s.PRICE_DECIMALS,
            heartbeat_minutes=s.PRICE_HEARTBEAT_MINUTES,
            default_lookback_hours=s.PRICE_DEFAULT_LOOKBACK_HOURS,
        )
