"""
StockLedger -- append-only inventory movements with a derived balance.

Responsibility:
    Record stock movements, maintain the per-product balance, enforce the
    negative-stock policy, and verify the balance invariant.

Architecture position:
    Kernel > Services -- imperative shell.  Called by DocumentService for
    document-driven movements and by scripts for adjustments and
    reconciliation.

Invariants enforced:
    - Balance invariant: ProductStockBalance.quantity equals the signed sum
      of the product's StockMovement rows.  Both change in the same flush.
    - Check-then-act under lock: the balance row is read with
      ``SELECT ... FOR UPDATE`` (BEGIN IMMEDIATE on SQLite) before the policy
      check, so concurrent movements cannot lose an update.
    - Immutability: movements are never updated or deleted.  Amendments and
      cancellations append compensating rows.
    - Policy: with ``allow_negative_stock=False`` an outgoing movement that
      would leave the balance below zero is rejected and nothing is written.

Failure modes:
    - Rejections are returned as StockMovementResult(success=False) carrying
      the current on-hand quantity.
    - IntegrityError on a concurrent first-use balance creation (handled via
      savepoint rollback and re-read).
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gescom_kernel.domain.clock import Clock, SystemClock
from gescom_kernel.domain.documents import StockDirection
from gescom_kernel.domain.dtos import (
    ReconciliationResult,
    StockMovementRecord,
    StockMovementResult,
    StockOrigin,
)
from gescom_kernel.domain.validation import coerce_decimal
from gescom_kernel.exceptions import InvalidMovementError, NegativeStockError
from gescom_kernel.logging_config import get_logger
from gescom_kernel.models.stock import MovementReason, ProductStockBalance, StockMovement

logger = get_logger("services.stock_ledger")

ZERO = Decimal("0")


def _to_record(movement: StockMovement) -> StockMovementRecord:
    return StockMovementRecord(
        movement_id=movement.id,
        product_id=movement.product_id,
        direction=StockDirection(movement.direction),
        quantity=movement.quantity,
        movement_date=movement.movement_date,
        reason=movement.reason,
        origin_type=movement.origin_type,
        document_id=movement.document_id,
        document_number=movement.document_number,
        line_id=movement.line_id,
        balance_after=movement.balance_after,
        note=movement.note,
    )


class StockLedger:
    """
    Stock movement ledger.

    Contract:
        record_movement() either appends exactly one movement and moves the
        balance by +/- quantity, or changes nothing and reports the current
        stock.  Never commits; the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        allow_negative_stock: bool = True,
        clock: Clock | None = None,
    ):
        self._session = session
        self._allow_negative_stock = allow_negative_stock
        self._clock = clock or SystemClock()

    @property
    def allow_negative_stock(self) -> bool:
        return self._allow_negative_stock

    # ------------------------------------------------------------------
    # Locking helpers
    # ------------------------------------------------------------------

    def _select_balance(self, product_id: str, *, lock: bool) -> ProductStockBalance | None:
        stmt = select(ProductStockBalance).where(ProductStockBalance.product_id == product_id)
        if lock:
            stmt = stmt.with_for_update()
        return self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create_balance(self, product_id: str) -> ProductStockBalance:
        """First movement of a product: insert its balance row (or lock the racer's)."""
        savepoint = self._session.begin_nested()
        try:
            balance = ProductStockBalance(
                product_id=product_id, quantity=ZERO, movement_count=0,
            )
            self._session.add(balance)
            self._session.flush()
            savepoint.commit()
            return balance
        except IntegrityError:
            logger.debug("stock_balance_race_retry", extra={"product_id": product_id})
            savepoint.rollback()
            balance = self._select_balance(product_id, lock=True)
            assert balance is not None
            return balance

    def _next_link_seq(self, document_id: UUID | None, line_id: UUID | None) -> int:
        if document_id is None:
            return 0
        current = self._session.execute(
            select(func.max(StockMovement.link_seq)).where(
                StockMovement.document_id == document_id,
                StockMovement.line_id == line_id if line_id is not None
                else StockMovement.line_id.is_(None),
            )
        ).scalar_one()
        return 0 if current is None else current + 1

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_movement(
        self,
        product_id: str,
        direction: StockDirection | str,
        quantity: Decimal | int | str,
        origin: StockOrigin,
        *,
        reason: str = MovementReason.DOCUMENT,
    ) -> StockMovementResult:
        """
        Append one movement and update the balance.

        Args:
            product_id: Product identifier.
            direction: "in" or "out".
            quantity: Strictly positive, finite quantity (Decimal, int or
                numeric string).
            origin: Document line or manual origin.
            reason: MovementReason value.

        Returns:
            StockMovementResult -- accepted with the new balance, or rejected
            with ``current_stock``.  An unknown direction or an unusable
            quantity is rejected with INVALID_MOVEMENT.  A rejection writes
            nothing, not even the balance row of a first-seen product.
        """
        try:
            direction = StockDirection(direction)
        except ValueError:
            return self._invalid(product_id, "direction", direction)
        amount = coerce_decimal(quantity)
        if amount is None or amount <= 0:
            return self._invalid(product_id, "quantity", quantity)

        balance = self._select_balance(product_id, lock=True)
        if balance is None:
            rejection = self._check_policy(product_id, direction, amount, ZERO, origin)
            if rejection is not None:
                return rejection
            balance = self._create_balance(product_id)

        on_hand = balance.quantity
        rejection = self._check_policy(product_id, direction, amount, on_hand, origin)
        if rejection is not None:
            return rejection
        new_balance = on_hand + direction.sign * amount

        balance.movement_count += 1
        movement = StockMovement(
            product_id=product_id,
            product_seq=balance.movement_count,
            direction=direction.value,
            quantity=amount,
            movement_date=self._clock.now(),
            reason=reason,
            origin_type=origin.origin_type,
            document_id=origin.document_id,
            document_number=origin.document_number,
            line_id=origin.line_id,
            link_seq=self._next_link_seq(origin.document_id, origin.line_id),
            balance_after=new_balance,
            note=origin.note,
        )
        balance.quantity = new_balance
        self._session.add(movement)
        self._session.flush()

        logger.info("stock_movement_recorded", extra={
            "product_id": product_id,
            "direction": direction.value,
            "quantity": str(amount),
            "balance": str(new_balance),
            "reason": reason,
            "origin_type": origin.origin_type,
            "document_number": origin.document_number,
        })
        return StockMovementResult.accepted(product_id, new_balance, movement.id)

    def _invalid(self, product_id: str, field: str, value) -> StockMovementResult:
        error = InvalidMovementError(product_id, field, str(value))
        logger.warning("stock_movement_invalid", extra={
            "product_id": product_id, "field": field, "value": str(value),
        })
        return StockMovementResult.rejected(
            product_id, str(error), error.code, self.balance(product_id),
        )

    def _check_policy(
        self,
        product_id: str,
        direction: StockDirection,
        quantity: Decimal,
        on_hand: Decimal,
        origin: StockOrigin,
    ) -> StockMovementResult | None:
        """Rejection when an outgoing movement would go below zero, else None."""
        if (
            direction is not StockDirection.OUT
            or self._allow_negative_stock
            or on_hand - quantity >= 0
        ):
            return None
        error = NegativeStockError(product_id, str(quantity), str(on_hand))
        logger.warning("stock_movement_rejected", extra={
            "product_id": product_id,
            "requested": str(quantity),
            "current_stock": str(on_hand),
            "origin_type": origin.origin_type,
            "document_number": origin.document_number,
        })
        return StockMovementResult.rejected(product_id, str(error), error.code, on_hand)

    def compensate(
        self,
        product_id: str,
        origin: StockOrigin,
        previous_quantity: Decimal,
        new_quantity: Decimal,
        direction: StockDirection | str,
    ) -> StockMovementResult | None:
        """
        Write the delta entry for an amended document line.

        ``direction`` is the document's stock direction.  A grown quantity
        moves further in that direction, a shrunk one moves back.  Returns
        None when the quantity did not change.
        """
        direction = StockDirection(direction)
        delta = new_quantity - previous_quantity
        if delta == 0:
            return None
        if delta > 0:
            return self.record_movement(
                product_id, direction, delta, origin, reason=MovementReason.AMENDMENT,
            )
        return self.record_movement(
            product_id, direction.reversed(), -delta, origin, reason=MovementReason.AMENDMENT,
        )

    def net_document_quantities(self, document_id: UUID) -> dict[tuple[str, UUID | None], Decimal]:
        """Signed net quantity per (product, line) currently booked for a document."""
        rows = self._session.execute(
            select(StockMovement).where(StockMovement.document_id == document_id)
            .order_by(StockMovement.product_id, StockMovement.product_seq)
        ).scalars()
        net: dict[tuple[str, UUID | None], Decimal] = defaultdict(lambda: ZERO)
        for movement in rows:
            net[(movement.product_id, movement.line_id)] += movement.signed_quantity
        return dict(net)

    def reverse_document(
        self, document_id: UUID, document_type: str, document_number: str,
    ) -> list[StockMovementResult]:
        """
        Write compensating entries that bring a document's net effect to zero.

        All-or-nothing: if any compensation is rejected by the policy, the
        entries written so far are rolled back (savepoint) and the returned
        list ends with the rejection.
        """
        results: list[StockMovementResult] = []
        net = self.net_document_quantities(document_id)
        savepoint = self._session.begin_nested()
        for (product_id, line_id), quantity in sorted(
            net.items(), key=lambda item: (item[0][0], str(item[0][1])),
        ):
            if quantity == 0:
                continue
            direction = StockDirection.OUT if quantity > 0 else StockDirection.IN
            origin = StockOrigin.for_document(document_type, document_id, document_number, line_id)
            result = self.record_movement(
                product_id, direction, abs(quantity), origin,
                reason=MovementReason.CANCELLATION,
            )
            results.append(result)
            if not result.success:
                savepoint.rollback()
                logger.warning("document_stock_reversal_rejected", extra={
                    "document_number": document_number,
                    "product_id": product_id,
                })
                return results
        savepoint.commit()
        logger.info("document_stock_reversed", extra={
            "document_number": document_number,
            "movement_count": len(results),
        })
        return results

    def adjust(
        self, product_id: str, signed_quantity: Decimal, note: str | None = None,
    ) -> StockMovementResult:
        """
        Manual stock adjustment (inventory count, breakage ...).

        Positive quantities add stock, negative ones remove it.
        """
        direction = StockDirection.IN if signed_quantity >= 0 else StockDirection.OUT
        return self.record_movement(
            product_id,
            direction,
            abs(signed_quantity),
            StockOrigin.manual(note),
            reason=MovementReason.ADJUSTMENT,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def balance(self, product_id: str) -> Decimal:
        """Current on-hand quantity (0 for an unknown product)."""
        balance = self._select_balance(product_id, lock=False)
        return balance.quantity if balance else ZERO

    def history(self, product_id: str) -> list[StockMovementRecord]:
        """All movements of a product, oldest first."""
        rows = self._session.execute(
            select(StockMovement)
            .where(StockMovement.product_id == product_id)
            .order_by(StockMovement.product_seq)
        ).scalars()
        return [_to_record(row) for row in rows]

    def document_movements(self, document_id: UUID) -> list[StockMovementRecord]:
        rows = self._session.execute(
            select(StockMovement)
            .where(StockMovement.document_id == document_id)
            .order_by(StockMovement.product_id, StockMovement.product_seq)
        ).scalars()
        return [_to_record(row) for row in rows]

    def reconcile(self, product_id: str | None = None) -> list[ReconciliationResult]:
        """
        Compare each cached balance with the signed sum of its movements.

        Products with movements but no balance row are reported with a cached
        balance of zero.
        """
        signed = case(
            (StockMovement.direction == StockDirection.IN.value, StockMovement.quantity),
            else_=-StockMovement.quantity,
        )
        sums_stmt = select(
            StockMovement.product_id,
            func.coalesce(func.sum(signed), 0),
            func.count(StockMovement.id),
        ).group_by(StockMovement.product_id)
        balances_stmt = select(ProductStockBalance)
        if product_id is not None:
            sums_stmt = sums_stmt.where(StockMovement.product_id == product_id)
            balances_stmt = balances_stmt.where(ProductStockBalance.product_id == product_id)

        ledger = {
            row[0]: (Decimal(str(row[1])), row[2])
            for row in self._session.execute(sums_stmt)
        }
        cached = {
            b.product_id: b.quantity for b in self._session.execute(balances_stmt).scalars()
        }

        results = []
        for pid in sorted(set(ledger) | set(cached)):
            ledger_balance, count = ledger.get(pid, (ZERO, 0))
            result = ReconciliationResult(
                product_id=pid,
                cached_balance=cached.get(pid, ZERO),
                ledger_balance=ledger_balance,
                movement_count=count,
            )
            if not result.is_consistent:
                logger.error("stock_balance_mismatch", extra={
                    "product_id": pid,
                    "cached_balance": str(result.cached_balance),
                    "ledger_balance": str(result.ledger_balance),
                })
            results.append(result)
        logger.info("stock_reconciled", extra={
            "product_count": len(results),
            "mismatch_count": sum(1 for r in results if not r.is_consistent),
        })
        return results
