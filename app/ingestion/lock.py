import asyncio

# one sync at a time per process; the scheduler, admin routes and CLI share it
INGESTION_LOCK = asyncio.Lock()
