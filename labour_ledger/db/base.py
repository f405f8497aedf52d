"""
Declarative bases for the ledger's ORM models.

Every table gets a uuid4 primary key stored as a 36-character string, so the
same schema runs on PostgreSQL and SQLite.  ``int`` columns map to BIGINT:
amounts and balances are whole minor units and there is no Decimal or float
money column in the schema.

Nothing here may import from models/, services/, selectors/ or domain/.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """Python UUID on the model side, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Mutable rows (workers, accounts) with database-maintained timestamps.

    Ledger entries and event headers carry their own clock-supplied
    ``created_at`` instead, so tests can pin it.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )


__all__ = ["Base", "TrackedBase", "UUIDString", "UUID"]
