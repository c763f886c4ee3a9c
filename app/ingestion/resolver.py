import logging
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repository import get_station_ids_batch

logger = logging.getLogger(__name__)

MAX_LOOKUP_CHUNK = 500


async def resolve_station_ids(
    db: AsyncSession, external_ids: Iterable[str], chunk_size: int = MAX_LOOKUP_CHUNK
) -> dict[str, int]:
    """
    Map external station ids to internal station ids with chunked IN queries.
    Ids that are not in the store are absent from the result.
    """
    chunk_size = max(1, min(chunk_size, MAX_LOOKUP_CHUNK))
    ids = sorted({str(i) for i in external_ids if i})
    found: dict[str, int] = {}
    for i in range(0, len(ids), chunk_size):
        found.update(await get_station_ids_batch(db, ids[i : i + chunk_size]))
    logger.info("Resolved %d of %d station ids", len(found), len(ids))
    return found
