import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.router import api
from app.core.logging import configure_logging
from app.core.settings import settings
from app.db.init_db import init_db
from app.ingestion.scheduler import start_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    await init_db()
    task = None
    if settings.SYNC_SCHEDULER_ENABLED:
        # start ingestion scheduler in background
        task = asyncio.create_task(start_scheduler())
    yield
    if task:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="UK Fuel Finder sync", lifespan=lifespan)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(api)
