# app/db/session.py
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.settings import settings

DATABASE_URL = settings.DB_URL


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.execute("PRAGMA busy_timeout=30000;")  # 30 seconds
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def make_engine(url: str = DATABASE_URL):
    """Async engine for url; sqlite gets a single shared connection in WAL mode."""
    if not url.startswith("sqlite"):
        return create_async_engine(url, pool_pre_ping=True)

    eng = create_async_engine(
        url,
        connect_args={"timeout": 30, "check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(eng.sync_engine, "connect", _set_sqlite_pragma)
    return eng


engine = make_engine()

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncSession:
    async with SessionLocal() as session:
        yield session
