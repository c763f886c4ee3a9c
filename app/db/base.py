from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # naive UTC: sqlite DateTime columns drop tzinfo on the way back out
    return datetime.now(timezone.utc).replace(tzinfo=None)
