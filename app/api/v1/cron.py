from typing import Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from app.api.deps import get_ingestion_service
from app.core.settings import settings
from app.ingestion.service import IngestionService

router = APIRouter()


def require_cron_secret(authorization: str | None = Header(None)) -> None:
    if not settings.CRON_SECRET:
        return
    if authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route("/cron/sync", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def cron_sync(
    type: Literal["stations", "prices", "both"] = Query("prices"),
    svc: IngestionService = Depends(get_ingestion_service),
):
    if type == "stations":
        return await svc.sync_stations()
    if type == "prices":
        return await svc.sync_prices()
    return await svc.sync_all()
