"""
Module: gescom_kernel.models.tax
Responsibility: ORM persistence for configured taxes and tax groups (the tax
    configuration store).
Architecture position: Kernel > Models.  May import from db/ only.

Rows are written by the configuration screens and read by TaxCatalogService,
which migrates legacy spellings at load time.  ``calculation_base`` and
``applicable_document_types`` are therefore stored exactly as written (they
may hold legacy values); the typed view lives in gescom_kernel.domain.taxes.

Ordering: taxes apply by ascending ``tax_order``; ``position`` records
insertion order and breaks ties.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gescom_kernel.db.base import TrackedBase, UUIDString


class TaxModel(TrackedBase):
    """A configured tax (TVA, FODEC, timbre fiscal ...)."""

    __tablename__ = "taxes"

    __table_args__ = (
        Index("idx_taxes_order", "tax_order", "position"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # "percentage" | "fixed"
    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    value: Mapped[Decimal] = mapped_column(nullable=False)

    # Raw, possibly legacy spelling; None for fixed taxes
    calculation_base: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # List of document type tags; None means "all original document types"
    applicable_document_types: Mapped[list | None] = mapped_column(JSON, nullable=True)

    tax_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Insertion order (tie-break for equal tax_order)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_standard: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<TaxModel {self.name} {self.kind} {self.value}>"


class TaxGroupModel(TrackedBase):
    """A named, reusable bundle of taxes applied together in a fixed sequence."""

    __tablename__ = "tax_groups"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    members: Mapped[list["TaxGroupMemberModel"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="TaxGroupMemberModel.order_in_group",
    )


class TaxGroupMemberModel(TrackedBase):
    """Membership of a tax in a group, with an optional base override."""

    __tablename__ = "tax_group_members"

    __table_args__ = (
        UniqueConstraint("group_id", "tax_id", name="uq_tax_group_member"),
    )

    group_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tax_groups.id", ondelete="CASCADE"),
        nullable=False,
    )

    tax_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("taxes.id"),
        nullable=False,
    )

    order_in_group: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    calculation_base_override: Mapped[str | None] = mapped_column(String(50), nullable=True)

    group: Mapped[TaxGroupModel] = relationship(back_populates="members")
