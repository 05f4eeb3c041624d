"""
ledger_kernel.db.base -- declarative base, key type and shared column sets.

Every table has a uuid4 primary key stored as a 36-character string so the
schema is identical on PostgreSQL and SQLite.  Money annotated as
``Mapped[Decimal]`` becomes ``Numeric(18, 2)``: cents, never float.

Column sets:
    TrackedBase         created/updated timestamps and actor ids.  These are
                        audit metadata; the immutability listeners let them
                        change on posted rows.
    ReconcilableMixin   reconciled / reconciliation_id / reconciliation_date
                        on every row a bank statement can clear.

Nothing in this module imports models, services or outer layers.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else uuid.UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        uuid.UUID: UUIDString(),
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
        date: Date,
        int: BigInteger,
    }

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


class TrackedBase(Base):
    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[uuid.UUID]
    updated_by_id: Mapped[uuid.UUID | None]


class ReconcilableMixin:
    # No foreign key on reconciliation_id: the reconciliation service clears
    # these columns before it deletes a reconciliation.
    reconciled: Mapped[bool] = mapped_column(default=False, nullable=False)
    reconciliation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUIDString(), nullable=True, index=True
    )
    reconciliation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
