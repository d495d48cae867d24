"""
Declarative base for the commerce models.

Lowest layer of the kernel: imports nothing from models, services,
selectors or domain.

Column conventions:
    - ``id``: uuid4, stored as String(36) so PostgreSQL and SQLite share
      one schema.
    - Decimal columns default to Numeric(38, 9).  Amounts are whole units
      but quantities and rates carry fractions.
    - ``TrackedBase`` rows carry server-side created/updated timestamps and
      the acting user of the last write.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID in Python, canonical 36-char string in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base for rows users create and edit.

    ``created_by_id`` is mandatory; services set ``updated_by_id`` on every
    later write.  ``updated_at`` is refreshed by the ORM on UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString())
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString())
