"""
Module: ledger_kernel.models.project_lot
Responsibility: ORM persistence for lots -- sub-parcels of a multi-unit
    project that shared costs are allocated across.
Architecture position: Kernel > Models.
"""

from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class ProjectLot(TrackedBase):
    """A lot within a project; lot_number is sequential per project."""

    __tablename__ = "project_lots"

    __table_args__ = (
        UniqueConstraint("project_id", "lot_number", name="uq_lot_project_number"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    lot_number: Mapped[int] = mapped_column(nullable=False)

    lot_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<ProjectLot {self.display_name}>"

    @property
    def display_name(self) -> str:
        return self.lot_name or f"Lot {self.lot_number}"
