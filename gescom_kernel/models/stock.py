"""
Module: gescom_kernel.models.stock
Responsibility: ORM persistence for the stock movement ledger and the
    denormalised per-product balance.
Architecture position: Kernel > Models.

Invariants enforced:
    - StockMovement rows are immutable from creation (ORM listeners in
      db/immutability.py).  Corrections are new compensating rows.
    - ProductStockBalance.quantity == signed sum of the product's movements
      (verified by StockLedger.reconcile()).
    - (document_id, line_id, link_seq) is unique: the first movement for a
      document line has link_seq 0, each later delta/compensation for the
      same line takes the next value.
    - (product_id, product_seq) is unique and gap-free per product; the
      sequence comes from the locked balance row.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gescom_kernel.db.base import Base, TrackedBase, UUIDString


class MovementReason:
    """Why a movement row was written."""

    DOCUMENT = "document"
    AMENDMENT = "amendment"
    CANCELLATION = "cancellation"
    ADJUSTMENT = "adjustment"


class ProductStockBalance(TrackedBase):
    """Current on-hand quantity of one product."""

    __tablename__ = "product_stock_balances"

    product_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Number of movements applied; the next movement takes movement_count + 1
    movement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ProductStockBalance {self.product_id}={self.quantity}>"


class StockMovement(Base):
    """One immutable inventory movement."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint(
            "document_id", "line_id", "link_seq", name="uq_stock_movement_line_link",
        ),
        UniqueConstraint("product_id", "product_seq", name="uq_stock_movement_product_seq"),
        Index("idx_stock_movements_product", "product_id", "movement_date"),
        Index("idx_stock_movements_document", "document_id"),
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Position in the product's history (1, 2, 3 ...)
    product_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    # "in" | "out"
    direction: Mapped[str] = mapped_column(String(3), nullable=False)

    # Always positive; direction carries the sign
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    movement_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reason: Mapped[str] = mapped_column(String(20), nullable=False)

    # Document type tag, or "manual" for adjustments
    origin_type: Mapped[str] = mapped_column(String(50), nullable=False)

    document_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    document_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    line_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    link_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Balance right after this movement was applied
    balance_after: Mapped[Decimal] = mapped_column(nullable=False)

    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def signed_quantity(self) -> Decimal:
        return self.quantity if self.direction == "in" else -self.quantity

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.product_id} {self.direction} {self.quantity} "
            f"{self.reason}>"
        )
