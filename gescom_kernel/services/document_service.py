"""
DocumentService -- save, amend and move commercial documents through their
lifecycle.

Responsibility:
    Orchestrate the save flow in one transaction:

        validate lines
          -> TaxCatalog (filtered for the document type, or an explicit
             selection / tax group)
          -> TotalsCalculator
          -> SequenceAllocator
          -> persist header, lines, frozen tax breakdown
          -> StockLedger movements (stock-affecting types)

    and the later writes: amendments (revision snapshot + compensating stock
    deltas) and status transitions (reception / cancellation stock effects).

Architecture position:
    Kernel > Services -- imperative shell over the pure engines.

Invariants enforced:
    - All-or-nothing: each write runs inside a savepoint.  A validation
      failure writes nothing; a stock rejection rolls back the number
      allocation and every row of the attempt.
    - The service never commits; the caller owns the transaction.
    - A saved document's totals change only through amend_lines(), which
      bumps ``revision`` and records a DocumentRevision snapshot.
    - Cancelling a document that moved stock writes compensating movements
      (StockLedger.reverse_document()).

Failure modes:
    - ValidationError / PolicyViolation / DocumentError -> SaveResult with
      ``success=False`` and the error code.
    - Storage failures -> PersistenceError (DuplicateNumberError for a
      number conflict) raised with the driver error as ``__cause__``.
"""

from __future__ import annotations

import dataclasses
from datetime import timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gescom_config.loader import get_default_config
from gescom_config.schema import EngineConfig
from gescom_engines.amount_words import amount_in_words
from gescom_engines.tax_catalog import TaxCatalog
from gescom_engines.totals import (
    TotalsCalculator,
    VatGroup,
    compute_lines_vat,
    group_vat_by_rate,
)
from gescom_kernel.domain.clock import Clock, SystemClock
from gescom_kernel.domain.documents import (
    DocumentType,
    StockDirection,
    check_transition,
    lifecycle_for,
    stock_effect_for,
)
from gescom_kernel.domain.dtos import (
    CalculationResult,
    DocumentDraft,
    DocumentTotals,
    LineInput,
    SaveResult,
    StockMovementResult,
    StockOrigin,
)
from gescom_kernel.domain.taxes import (
    CalculationBase,
    FixedTax,
    PercentageTax,
    Tax,
    TaxKind,
)
from gescom_kernel.domain.validation import validate_lines
from gescom_kernel.exceptions import (
    DocumentError,
    DocumentNotEditableError,
    DocumentNotFoundError,
    DuplicateNumberError,
    GescomError,
    PersistenceError,
    ValidationError,
)
from gescom_kernel.logging_config import LogContext, get_logger
from gescom_kernel.models.document import (
    Document,
    DocumentLine,
    DocumentRevision,
    DocumentTaxLine,
)
from gescom_kernel.services.sequence_allocator import SequenceAllocator
from gescom_kernel.services.stock_ledger import StockLedger
from gescom_kernel.services.tax_catalog_service import TaxCatalogService

logger = get_logger("services.document")


class _StockRejected(Exception):
    """Internal: unwinds a write after the ledger refused a movement."""

    def __init__(self, rejection: StockMovementResult):
        self.rejection = rejection
        super().__init__(rejection.error)


def _is_number_conflict(exc: IntegrityError) -> bool:
    text = str(exc.orig)
    return "uq_document_number" in text or "documents.number" in text


def _line_snapshot(line: DocumentLine) -> dict:
    return {
        "line_id": str(line.id),
        "position": line.position,
        "product_id": line.product_id,
        "description": line.description,
        "quantity": str(line.quantity),
        "unit_price": str(line.unit_price),
        "discount_percent": str(line.discount_percent),
        "net_amount": str(line.net_amount),
        "tax_amount": str(line.tax_amount),
        "gross_amount": str(line.gross_amount),
    }


def _tax_line_snapshot(tax_line: DocumentTaxLine) -> dict:
    return {
        "tax_id": tax_line.tax_id,
        "name": tax_line.name,
        "kind": tax_line.kind,
        "base": str(tax_line.base),
        "amount": str(tax_line.amount),
        "value": None if tax_line.value is None else str(tax_line.value),
        "calculation_base": tax_line.calculation_base,
    }


def _frozen_taxes(document: Document) -> tuple[Tax, ...] | None:
    """
    Rebuild the taxes a document was priced with from its tax lines.

    None when a tax line carries no frozen value (rows saved before values
    were recorded); the caller then resolves the ids against the catalog.
    """
    taxes: list[Tax] = []
    for tax_line in sorted(document.tax_lines, key=lambda t: t.position):
        if tax_line.value is None:
            return None
        if tax_line.kind == TaxKind.FIXED.value:
            taxes.append(FixedTax(
                tax_id=tax_line.tax_id,
                name=tax_line.name,
                value=tax_line.value,
                order=tax_line.position,
            ))
        else:
            taxes.append(PercentageTax(
                tax_id=tax_line.tax_id,
                name=tax_line.name,
                value=tax_line.value,
                calculation_base=CalculationBase.parse(tax_line.calculation_base),
                order=tax_line.position,
            ))
    return tuple(taxes)


class DocumentService:
    """
    Document write operations.

    Contract:
        - save(draft) returns a SaveResult; on success the document has an
          allocated number, frozen totals and (for stock-affecting types)
          its movements, all in the caller's transaction.
        - amend_lines() and transition() follow the same all-or-nothing rule.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT render documents.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        catalog: TaxCatalog | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or get_default_config()
        self._catalog = catalog
        self._clock = clock or SystemClock()
        self._calculator = TotalsCalculator(self._config.decimal_places)
        self._allocator = SequenceAllocator(session, self._clock, self._config.numbering)
        self._ledger = StockLedger(
            session,
            allow_negative_stock=self._config.allow_negative_stock,
            clock=self._clock,
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def allocator(self) -> SequenceAllocator:
        return self._allocator

    @property
    def ledger(self) -> StockLedger:
        return self._ledger

    @property
    def catalog(self) -> TaxCatalog:
        """Tax catalog, loaded from the configuration store on first use."""
        if self._catalog is None:
            self._catalog = TaxCatalogService(self._session).load_catalog()
        return self._catalog

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def resolve_taxes(
        self,
        document_type: DocumentType | str,
        tax_ids: Sequence[str] | None = None,
        tax_group_id: str | None = None,
    ) -> tuple[Tax, ...]:
        """
        Ordered taxes for a document.

        A tax group wins over an explicit selection; with neither, every
        active tax configured for the document type applies.
        """
        doc_type = DocumentType.parse(document_type)
        if tax_group_id is not None:
            return self.catalog.expand_group(tax_group_id, doc_type)
        if tax_ids is not None:
            return self.catalog.select(tax_ids, doc_type)
        return self.catalog.get_applicable_taxes(doc_type)

    def compute_totals(
        self,
        lines: Sequence[LineInput],
        document_type: DocumentType | str,
        *,
        tax_ids: Sequence[str] | None = None,
        tax_group_id: str | None = None,
    ) -> CalculationResult:
        """
        Preview the totals of unsaved lines.

        Returns:
            CalculationResult -- ``totals`` on success; a malformed line or
            an unknown document type comes back as ``success=False`` with
            the error code.
        """
        try:
            doc_type = DocumentType.parse(document_type)
            validated = validate_lines(lines, doc_type.value)
        except GescomError as exc:
            logger.info("totals_preview_rejected", extra={"error_code": exc.code})
            return CalculationResult.failure(exc)
        taxes = self.resolve_taxes(doc_type, tax_ids, tax_group_id)
        return CalculationResult(
            success=True, totals=self._calculator.compute(lines=validated, taxes=taxes),
        )

    def vat_by_rate(self, lines: Sequence[LineInput]) -> CalculationResult:
        """
        Per-product VAT grouped by rate ("TVA par taux"), in ``vat_groups``.

        With ``auto_enable_fodec`` every line carries the FODEC surcharge.
        Lines without their own FODEC rate use the configured one.
        """
        invoice = self._config.invoice
        try:
            validated = validate_lines(lines)
        except ValidationError as exc:
            logger.info("vat_preview_rejected", extra={"error_code": exc.code})
            return CalculationResult.failure(exc)
        if invoice.auto_enable_fodec:
            validated = tuple(dataclasses.replace(line, fodec=True) for line in validated)
        groups: tuple[VatGroup, ...] = group_vat_by_rate(
            compute_lines_vat(
                validated,
                fodec_rate=invoice.fodec_rate,
                decimal_places=self._config.decimal_places,
            )
        )
        return CalculationResult(success=True, vat_groups=groups)

    def allocate_number(self, document_type: DocumentType | str) -> str:
        return self._allocator.next_number(document_type)

    def preview_number(self, document_type: DocumentType | str) -> str:
        return self._allocator.peek_number(document_type)

    def record_stock_movement(
        self,
        product_id: str,
        direction: StockDirection | str,
        quantity: Decimal | int | str,
        origin: StockOrigin,
    ) -> StockMovementResult:
        return self._ledger.record_movement(product_id, direction, quantity, origin)

    def amount_in_words(self, document: Document) -> str:
        """Grand total spelled out in French, in the configured currency."""
        return amount_in_words(
            document.grand_total,
            self._config.currency.code,
            document.currency_decimals,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, document_id: UUID) -> Document | None:
        return self._session.get(Document, document_id)

    def get_by_number(self, document_type: DocumentType | str, number: str) -> Document | None:
        return self._session.execute(
            select(Document).where(
                Document.document_type == DocumentType.parse(document_type).value,
                Document.number == number,
            )
        ).scalar_one_or_none()

    def _locked_document(self, document_id: UUID) -> Document:
        document = self._session.execute(
            select(Document)
            .where(Document.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    # ------------------------------------------------------------------
    # Stock helpers
    # ------------------------------------------------------------------

    def _commit_stock(
        self, document: Document, direction: StockDirection,
    ) -> list[StockMovementResult]:
        """One movement per stocked line; raises _StockRejected on refusal."""
        results = []
        for line in document.lines:
            if not line.product_id or line.quantity <= 0:
                continue
            origin = StockOrigin.for_document(
                document.document_type, document.id, document.number, line.id,
            )
            result = self._ledger.record_movement(
                line.product_id, direction, line.quantity, origin,
            )
            if not result.success:
                raise _StockRejected(result)
            results.append(result)
        return results

    def _rebalance_stock(
        self, document: Document, direction: StockDirection,
    ) -> list[StockMovementResult]:
        """Compensating deltas bringing the ledger in line with amended lines."""
        booked = self._ledger.net_document_quantities(document.id)
        target: dict[tuple[str, UUID | None], Decimal] = {}
        for line in document.lines:
            if line.product_id and line.quantity > 0:
                target[(line.product_id, line.id)] = line.quantity

        results = []
        for key in sorted(set(booked) | set(target), key=lambda k: (k[0], str(k[1]))):
            product_id, line_id = key
            previous = booked.get(key, Decimal("0")) * direction.sign
            origin = StockOrigin.for_document(
                document.document_type, document.id, document.number, line_id,
            )
            result = self._ledger.compensate(
                product_id, origin, previous, target.get(key, Decimal("0")), direction,
            )
            if result is None:
                continue
            if not result.success:
                raise _StockRejected(result)
            results.append(result)
        return results

    @staticmethod
    def _stock_failure(rejection: StockMovementResult, **kwargs) -> SaveResult:
        return SaveResult(
            success=False,
            error=rejection.error,
            error_code=rejection.error_code,
            stock_rejection=rejection,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(self, draft: DocumentDraft) -> SaveResult:
        """
        Validate, price, number and persist a draft document.

        Returns:
            SaveResult -- success with number, totals and movements, or
            failure with the error code (nothing written).

        Raises:
            PersistenceError: storage failure (DuplicateNumberError for a
                number conflict); the driver error is kept as ``__cause__``.
        """
        try:
            doc_type = DocumentType.parse(draft.document_type)
        except GescomError as exc:
            return SaveResult.failure(exc)

        correlation_id = str(uuid4())
        with LogContext.bind(correlation_id=correlation_id, document_type=doc_type.value):
            logger.info("document_save_started", extra={"line_count": len(draft.lines)})
            try:
                lines = validate_lines(draft.lines, doc_type.value, allow_empty=False)
            except ValidationError as exc:
                logger.warning("document_save_rejected", extra={
                    "error_code": exc.code, "detail": str(exc),
                })
                return SaveResult.failure(exc)

            source_type = None
            if draft.source_document_id is not None:
                source = self.get(draft.source_document_id)
                if source is None:
                    exc = DocumentNotFoundError(str(draft.source_document_id))
                    logger.warning("document_save_rejected", extra={"error_code": exc.code})
                    return SaveResult.failure(exc)
                source_type = source.document_type

            taxes = self.resolve_taxes(doc_type, draft.tax_ids, draft.tax_group_id)
            totals = self._calculator.compute(lines=lines, taxes=taxes)

            number = None
            savepoint = self._session.begin_nested()
            try:
                number = self._allocator.next_number(doc_type)
                with LogContext.bind(document_number=number):
                    document = self._build_document(draft, doc_type, number, totals, source_type)
                    self._session.add(document)
                    self._session.flush()

                    movements: list[StockMovementResult] = []
                    effect = stock_effect_for(doc_type, source_type)
                    if effect is not None and effect.trigger_status is None:
                        movements = self._commit_stock(document, effect.direction)
                        document.stock_committed = True
                        self._session.flush()
                savepoint.commit()
            except _StockRejected as exc:
                savepoint.rollback()
                logger.warning("document_save_rejected", extra={
                    "error_code": exc.rejection.error_code,
                    "product_id": exc.rejection.product_id,
                    "current_stock": str(exc.rejection.current_stock),
                })
                return self._stock_failure(exc.rejection)
            except IntegrityError as exc:
                savepoint.rollback()
                logger.error("document_save_failed", extra={"detail": str(exc.orig)})
                if number is not None and _is_number_conflict(exc):
                    raise DuplicateNumberError(doc_type.value, number) from exc
                raise PersistenceError("save_document", str(exc.orig)) from exc
            except SQLAlchemyError as exc:
                savepoint.rollback()
                logger.error("document_save_failed", extra={"detail": str(exc)})
                raise PersistenceError("save_document", str(exc)) from exc

            logger.info("document_saved", extra={
                "document_id": str(document.id),
                "document_number": number,
                "grand_total": str(totals.grand_total),
                "movement_count": len(movements),
            })
            return SaveResult(
                success=True,
                document_id=document.id,
                number=number,
                status=document.status,
                revision=document.revision,
                totals=totals,
                movements=tuple(movements),
            )

    def _build_document(
        self,
        draft: DocumentDraft,
        doc_type: DocumentType,
        number: str,
        totals: DocumentTotals,
        source_type: str | None,
    ) -> Document:
        document_date = draft.document_date or self._clock.today()
        due_date = draft.due_date
        invoice = self._config.invoice
        if due_date is None and doc_type is DocumentType.FACTURE and invoice.use_due_date:
            due_date = document_date + timedelta(days=invoice.default_due_days)

        document = Document(
            id=uuid4(),
            document_type=doc_type.value,
            number=number,
            document_date=document_date,
            due_date=due_date,
            party_id=draft.party_id,
            status=lifecycle_for(doc_type).initial,
            revision=1,
            net_total=totals.net_total,
            tax_total=totals.tax_total,
            grand_total=totals.grand_total,
            currency_decimals=totals.decimal_places,
            source_document_id=draft.source_document_id,
            source_document_type=source_type,
            stock_committed=False,
            notes=draft.notes,
        )
        for position, line in enumerate(totals.lines):
            document.lines.append(self._new_line(position, line))
        self._set_tax_lines(document, totals)
        return document

    @staticmethod
    def _new_line(position: int, line) -> DocumentLine:
        return DocumentLine(
            id=uuid4(),
            position=position,
            product_id=line.product_id,
            description=line.description,
            quantity=line.quantity,
            unit_price=line.unit_price,
            discount_percent=line.discount_percent,
            net_amount=line.net_amount,
            tax_amount=line.tax_amount,
            gross_amount=line.gross_amount,
        )

    @staticmethod
    def _set_tax_lines(document: Document, totals: DocumentTotals) -> None:
        document.tax_lines.clear()
        for position, entry in enumerate(totals.tax_breakdown):
            document.tax_lines.append(DocumentTaxLine(
                position=position,
                tax_id=entry.tax_id,
                name=entry.name,
                kind=entry.kind,
                base=entry.base,
                amount=entry.amount,
                value=entry.value,
                calculation_base=entry.calculation_base,
            ))

    # ------------------------------------------------------------------
    # Amend
    # ------------------------------------------------------------------

    def amend_lines(
        self,
        document_id: UUID,
        lines: Sequence[LineInput],
        *,
        reason: str | None = None,
        tax_ids: Sequence[str] | None = None,
        tax_group_id: str | None = None,
    ) -> SaveResult:
        """
        Replace a saved document's lines.

        Lines carrying the ``line_id`` of an existing line update it; lines
        without one are added; existing lines not listed are removed.  The
        previous totals are kept in a DocumentRevision snapshot.  Unless a new
        selection is given, the document keeps its frozen tax selection.  If
        the document already moved stock, compensating deltas are written per
        line.
        """
        with LogContext.bind(document_id=str(document_id)):
            try:
                document = self._locked_document(document_id)
                lifecycle = lifecycle_for(document.document_type)
                if lifecycle.is_terminal(document.status):
                    raise DocumentNotEditableError(str(document_id), document.status)
                validated = validate_lines(lines, document.document_type, allow_empty=False)
            except (DocumentError, ValidationError) as exc:
                logger.warning("document_amend_rejected", extra={
                    "error_code": exc.code, "detail": str(exc),
                })
                return SaveResult.failure(exc, document_id=document_id)

            with LogContext.bind(document_number=document.number):
                return self._apply_amendment(
                    document, validated, reason=reason, tax_ids=tax_ids, tax_group_id=tax_group_id,
                )

    def _apply_amendment(
        self,
        document: Document,
        validated: tuple[LineInput, ...],
        *,
        reason: str | None,
        tax_ids: Sequence[str] | None,
        tax_group_id: str | None,
    ) -> SaveResult:
        taxes = None
        if tax_ids is None and tax_group_id is None:
            taxes = _frozen_taxes(document)
            if taxes is None:
                tax_ids = [tax_line.tax_id for tax_line in document.tax_lines]
        if taxes is None:
            taxes = self.resolve_taxes(document.document_type, tax_ids, tax_group_id)
        totals = self._calculator.compute(
            lines=validated, taxes=taxes, decimal_places=document.currency_decimals,
        )

        savepoint = self._session.begin_nested()
        try:
            self._session.add(DocumentRevision(
                document_id=document.id,
                revision=document.revision,
                net_total=document.net_total,
                tax_total=document.tax_total,
                grand_total=document.grand_total,
                snapshot={
                    "lines": [_line_snapshot(line) for line in document.lines],
                    "tax_lines": [_tax_line_snapshot(t) for t in document.tax_lines],
                },
                recorded_at=self._clock.now(),
                reason=reason,
            ))
            self._replace_lines(document, totals)
            self._set_tax_lines(document, totals)
            document.revision = document.revision + 1
            document.net_total = totals.net_total
            document.tax_total = totals.tax_total
            document.grand_total = totals.grand_total
            self._session.flush()

            movements: list[StockMovementResult] = []
            if document.stock_committed:
                effect = stock_effect_for(
                    document.document_type, document.source_document_type,
                )
                if effect is not None:
                    movements = self._rebalance_stock(document, effect.direction)
            savepoint.commit()
        except _StockRejected as exc:
            savepoint.rollback()
            self._session.expire(document)
            logger.warning("document_amend_rejected", extra={
                "error_code": exc.rejection.error_code,
                "product_id": exc.rejection.product_id,
            })
            return self._stock_failure(exc.rejection, document_id=document.id)
        except SQLAlchemyError as exc:
            savepoint.rollback()
            logger.error("document_amend_failed", extra={"detail": str(exc)})
            raise PersistenceError("amend_document", str(exc)) from exc

        logger.info("document_amended", extra={
            "revision": document.revision,
            "grand_total": str(totals.grand_total),
            "movement_count": len(movements),
        })
        return SaveResult(
            success=True,
            document_id=document.id,
            number=document.number,
            status=document.status,
            revision=document.revision,
            totals=totals,
            movements=tuple(movements),
        )

    def _replace_lines(self, document: Document, totals: DocumentTotals) -> None:
        existing = {line.id: line for line in document.lines}
        kept: list[DocumentLine] = []
        for position, computed in enumerate(totals.lines):
            line = existing.get(computed.line_id) if computed.line_id else None
            if line is None:
                kept.append(self._new_line(position, computed))
                continue
            line.position = position
            line.product_id = computed.product_id
            line.description = computed.description
            line.quantity = computed.quantity
            line.unit_price = computed.unit_price
            line.discount_percent = computed.discount_percent
            line.net_amount = computed.net_amount
            line.tax_amount = computed.tax_amount
            line.gross_amount = computed.gross_amount
            kept.append(line)
        document.lines = kept

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(self, document_id: UUID, to_status: str) -> SaveResult:
        """
        Move a document to ``to_status``.

        Reaching the stock trigger status (supplier order received) writes the
        incoming movements; reaching the cancelled status reverses every
        movement the document made.
        """
        with LogContext.bind(document_id=str(document_id)):
            try:
                document = self._locked_document(document_id)
                check_transition(document.document_type, document.status, to_status)
            except DocumentError as exc:
                logger.warning("document_transition_rejected", extra={
                    "error_code": exc.code, "detail": str(exc),
                })
                return SaveResult.failure(exc, document_id=document_id)

            with LogContext.bind(document_number=document.number):
                return self._apply_transition(document, to_status)

    def _apply_transition(self, document: Document, to_status: str) -> SaveResult:
        from_status = document.status
        lifecycle = lifecycle_for(document.document_type)
        effect = stock_effect_for(document.document_type, document.source_document_type)

        movements: list[StockMovementResult] = []
        savepoint = self._session.begin_nested()
        try:
            if (
                effect is not None
                and effect.trigger_status == to_status
                and not document.stock_committed
            ):
                movements = self._commit_stock(document, effect.direction)
                document.stock_committed = True

            if to_status == lifecycle.cancelled and document.stock_committed:
                movements = self._ledger.reverse_document(
                    document.id, document.document_type, document.number,
                )
                if movements and not movements[-1].success:
                    raise _StockRejected(movements[-1])
                document.stock_committed = False

            document.status = to_status
            self._session.flush()
            savepoint.commit()
        except _StockRejected as exc:
            savepoint.rollback()
            self._session.expire(document)
            logger.warning("document_transition_rejected", extra={
                "error_code": exc.rejection.error_code,
                "product_id": exc.rejection.product_id,
            })
            return self._stock_failure(exc.rejection, document_id=document.id)
        except SQLAlchemyError as exc:
            savepoint.rollback()
            logger.error("document_transition_failed", extra={"detail": str(exc)})
            raise PersistenceError("transition_document", str(exc)) from exc

        logger.info("document_status_changed", extra={
            "from_status": from_status,
            "to_status": to_status,
            "movement_count": len(movements),
        })
        return SaveResult(
            success=True,
            document_id=document.id,
            number=document.number,
            status=document.status,
            revision=document.revision,
            movements=tuple(movements),
        )
