# app/db/init_db.py
from app.db.base import Base
from app.db.session import engine

# IMPORTANT: import models so SQLAlchemy registers tables before create_all()
from app.db.models import prices, stations, sync  # noqa: F401


async def init_db(bind=None):
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
