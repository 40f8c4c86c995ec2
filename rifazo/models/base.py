"""Declarative base and column helpers shared by every model."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

from rifazo.db.metadata import metadata_obj

# BigInteger keys, with the Integer variant SQLite needs for ROWID autoincrement.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    """Timezone-aware ``now`` used as the default of timestamp columns."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    metadata = metadata_obj


__all__ = ["Base", "ID_TYPE", "utcnow"]
