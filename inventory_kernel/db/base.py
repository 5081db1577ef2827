"""
Declarative base for the inventory schema.

Every table gets a UUID primary key stored as ``String(36)`` so the same
schema runs on SQLite and PostgreSQL.  Prices and costs map to
``Numeric(18, 4)``; stock counts are plain integers.  Rows an admin can edit
(stock records, orders, adjustments) extend ``TrackedBase``, which records
who created and last changed them.

Nothing in this module may import from models/, services/ or selectors/.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(18, 4),
        datetime: DateTime(timezone=True),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds creation/update timestamps and the acting user for editable rows.

    ``created_at`` is stamped by the database on insert; ``updated_at`` is
    refreshed on every ORM update.  ``created_by_id`` is mandatory.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[UUID] = mapped_column(UUIDString())
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString())
