"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable structures flowing between callers, the calculation engines and
    the services: LineInput / DocumentDraft (input), ComputedLine,
    TaxBreakdownEntry, DocumentTotals, CalculationResult (calculator
    output), StockOrigin, StockMovementResult, ReconciliationResult
    (ledger), SaveResult (document service).

Architecture position:
    Kernel > Domain -- zero I/O, no ORM imports.

Failures crossing the service boundary are returned as result values
(``success=False`` plus ``error_code``), never as raw exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from gescom_kernel.domain.documents import MANUAL_ORIGIN, DocumentType, StockDirection


@dataclass(frozen=True, slots=True)
class LineInput:
    """
    One document line as entered.

    ``line_id`` identifies an existing saved line when amending a document;
    leave it None for new lines.  ``vat_rate``, ``fodec`` and ``fodec_rate``
    are product attributes used by the per-product VAT view; ``fodec_rate``
    None means the configured default rate.
    """

    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    product_id: str | None = None
    description: str | None = None
    line_id: UUID | None = None
    vat_rate: Decimal | None = None
    fodec: bool = False
    fodec_rate: Decimal | None = None


@dataclass(frozen=True, slots=True)
class ComputedLine:
    """A line with its computed amounts (HT, taxes, TTC)."""

    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    product_id: str | None = None
    description: str | None = None
    line_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class TaxBreakdownEntry:
    """
    One applied tax.  Fixed taxes record base 0.

    ``value`` (rate or flat amount) and ``calculation_base`` are kept so a
    saved document can be repriced with the taxes it was frozen with.
    """

    tax_id: str
    name: str
    kind: str
    base: Decimal
    amount: Decimal
    value: Decimal | None = None
    calculation_base: str | None = None


@dataclass(frozen=True, slots=True)
class DocumentTotals:
    """Result of TotalsCalculator.compute()."""

    lines: tuple[ComputedLine, ...]
    tax_breakdown: tuple[TaxBreakdownEntry, ...]
    net_total: Decimal
    tax_total: Decimal
    grand_total: Decimal
    decimal_places: int = 3

    def amount_for(self, tax_id: str) -> Decimal | None:
        for entry in self.tax_breakdown:
            if entry.tax_id == tax_id:
                return entry.amount
        return None


@dataclass(frozen=True, slots=True)
class CalculationResult:
    """
    Outcome of a preview calculation (totals or VAT by rate).

    Exactly one of ``totals`` / ``vat_groups`` is filled on success.
    """

    success: bool
    totals: DocumentTotals | None = None
    vat_groups: tuple = ()
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failure(cls, error: Exception) -> "CalculationResult":
        return cls(
            success=False,
            error=str(error),
            error_code=getattr(error, "code", type(error).__name__),
        )


@dataclass(frozen=True, slots=True)
class DocumentDraft:
    """A transient, unsaved document."""

    document_type: DocumentType
    lines: tuple[LineInput, ...]
    document_date: date | None = None
    due_date: date | None = None
    party_id: str | None = None
    source_document_id: UUID | None = None
    notes: str | None = None
    # Explicit tax selection; None means "all applicable taxes"
    tax_ids: tuple[str, ...] | None = None
    tax_group_id: str | None = None


@dataclass(frozen=True, slots=True)
class StockOrigin:
    """Where a stock movement comes from."""

    origin_type: str
    document_id: UUID | None = None
    document_number: str | None = None
    line_id: UUID | None = None
    note: str | None = None

    @classmethod
    def for_document(
        cls,
        document_type: DocumentType | str,
        document_id: UUID,
        document_number: str,
        line_id: UUID | None = None,
    ) -> "StockOrigin":
        return cls(
            origin_type=DocumentType.parse(document_type).value,
            document_id=document_id,
            document_number=document_number,
            line_id=line_id,
        )

    @classmethod
    def manual(cls, note: str | None = None) -> "StockOrigin":
        return cls(origin_type=MANUAL_ORIGIN, note=note)


@dataclass(frozen=True, slots=True)
class StockMovementResult:
    """
    Outcome of StockLedger.record_movement().

    On rejection ``current_stock`` always carries the on-hand quantity so the
    caller can retry with an adjusted request.
    """

    success: bool
    product_id: str
    balance: Decimal | None = None
    movement_id: UUID | None = None
    error: str | None = None
    error_code: str | None = None
    current_stock: Decimal | None = None

    @classmethod
    def accepted(cls, product_id: str, balance: Decimal, movement_id: UUID | None) -> "StockMovementResult":
        return cls(success=True, product_id=product_id, balance=balance, movement_id=movement_id)

    @classmethod
    def rejected(
        cls, product_id: str, error: str, error_code: str, current_stock: Decimal,
    ) -> "StockMovementResult":
        return cls(
            success=False,
            product_id=product_id,
            error=error,
            error_code=error_code,
            current_stock=current_stock,
        )


@dataclass(frozen=True, slots=True)
class StockMovementRecord:
    """Read-side view of a ledger row."""

    movement_id: UUID
    product_id: str
    direction: StockDirection
    quantity: Decimal
    movement_date: datetime
    reason: str
    origin_type: str
    document_id: UUID | None
    document_number: str | None
    line_id: UUID | None
    balance_after: Decimal
    note: str | None = None


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """Cached balance vs. signed sum of the movement history for one product."""

    product_id: str
    cached_balance: Decimal
    ledger_balance: Decimal
    movement_count: int

    @property
    def is_consistent(self) -> bool:
        return self.cached_balance == self.ledger_balance

    @property
    def difference(self) -> Decimal:
        return self.cached_balance - self.ledger_balance


@dataclass(frozen=True, slots=True)
class SaveResult:
    """
    Outcome of a DocumentService write (save, amend, transition).

    ``stock_rejection`` is set when a negative-stock policy violation aborted
    the operation.
    """

    success: bool
    document_id: UUID | None = None
    number: str | None = None
    status: str | None = None
    revision: int | None = None
    totals: DocumentTotals | None = None
    error: str | None = None
    error_code: str | None = None
    stock_rejection: StockMovementResult | None = None
    movements: tuple[StockMovementResult, ...] = field(default_factory=tuple)

    @classmethod
    def failure(cls, error: Exception, **kwargs) -> "SaveResult":
        return cls(
            success=False,
            error=str(error),
            error_code=getattr(error, "code", type(error).__name__),
            **kwargs,
        )
