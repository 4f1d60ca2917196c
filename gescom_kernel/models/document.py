"""
Module: gescom_kernel.models.document
Responsibility: ORM persistence for saved commercial documents: header,
    lines, frozen tax breakdown and revision snapshots.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (document_type, number) is unique: an allocated number identifies
      exactly one document.
    - Frozen totals: net_total / tax_total / grand_total change only together
      with a ``revision`` bump (amendment).  Enforced by ORM listeners in
      db/immutability.py.
    - DocumentRevision rows are immutable from creation.

Failure modes:
    - IntegrityError on a duplicate number (surfaced as DuplicateNumberError).
    - ImmutabilityViolationError on an unsanctioned totals change.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gescom_kernel.db.base import Base, TrackedBase, UUIDString


class Document(TrackedBase):
    """
    Saved document header.

    Contract:
        Created by DocumentService.save() with an allocated number and frozen
        totals.  ``status`` follows the lifecycle of its document type
        (gescom_kernel.domain.documents).  ``stock_committed`` records whether
        the ledger currently holds movements for this document.
    """

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("document_type", "number", name="uq_document_number"),
        Index("idx_documents_type_date", "document_type", "document_date"),
        Index("idx_documents_party", "party_id"),
    )

    document_type: Mapped[str] = mapped_column(String(50), nullable=False)

    number: Mapped[str] = mapped_column(String(50), nullable=False)

    document_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Due date (facture), validity date (devis), expected reception (commande)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    party_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(String(30), nullable=False)

    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    net_total: Mapped[Decimal] = mapped_column(nullable=False)

    tax_total: Mapped[Decimal] = mapped_column(nullable=False)

    grand_total: Mapped[Decimal] = mapped_column(nullable=False)

    currency_decimals: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    # Credit note -> invoice, invoice -> delivery note, ...
    source_document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=True,
    )

    source_document_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    stock_committed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    lines: Mapped[list["DocumentLine"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLine.position",
    )

    tax_lines: Mapped[list["DocumentTaxLine"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentTaxLine.position",
    )

    revisions: Mapped[list["DocumentRevision"]] = relationship(
        back_populates="document",
        order_by="DocumentRevision.revision",
    )

    def __repr__(self) -> str:
        return f"<Document {self.document_type} {self.number} {self.status}>"


class DocumentLine(Base):
    """
    One line of a saved document.

    ``id`` is the stable line identifier linked from stock movements; it
    survives amendments that change the line's quantity.
    """

    __tablename__ = "document_lines"

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    discount_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    net_amount: Mapped[Decimal] = mapped_column(nullable=False)

    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)

    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[Document] = relationship(back_populates="lines")


class DocumentTaxLine(Base):
    """One frozen tax breakdown entry of a saved document."""

    __tablename__ = "document_tax_lines"

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    tax_id: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    base: Mapped[Decimal] = mapped_column(nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Rate (percentage) or flat amount (fixed) the tax had when frozen
    value: Mapped[Decimal | None] = mapped_column(nullable=True)

    calculation_base: Mapped[str | None] = mapped_column(String(40), nullable=True)

    document: Mapped[Document] = relationship(back_populates="tax_lines")


class DocumentRevision(Base):
    """
    Immutable snapshot of a document's totals before an amendment.

    ``snapshot`` holds the superseded lines and tax breakdown as JSON
    (amounts as strings).
    """

    __tablename__ = "document_revisions"

    __table_args__ = (
        UniqueConstraint("document_id", "revision", name="uq_document_revision"),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=False,
    )

    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    net_total: Mapped[Decimal] = mapped_column(nullable=False)

    tax_total: Mapped[Decimal] = mapped_column(nullable=False)

    grand_total: Mapped[Decimal] = mapped_column(nullable=False)

    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    document: Mapped[Document] = relationship(back_populates="revisions")
