from app.ingestion.service import IngestionService

_svc: IngestionService | None = None


def get_ingestion_service() -> IngestionService:
    global _svc
    if _svc is None:
        _svc = IngestionService()
    return _svc
