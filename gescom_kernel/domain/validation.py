"""
Line validation -- pure checks run before any calculation.

TotalsCalculator assumes pre-validated input and never raises; everything it
relies on (Decimal values, non-negative quantity and price, discount within
[0, 100], each saved line listed at most once) is established here.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

from gescom_kernel.domain.dtos import LineInput
from gescom_kernel.exceptions import (
    DuplicateLineError,
    EmptyDocumentError,
    InvalidDiscountError,
    InvalidPriceError,
    InvalidQuantityError,
)

HUNDRED = Decimal("100")


def coerce_decimal(value: Any) -> Decimal | None:
    """Finite Decimal from a Decimal, int, str or float; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            return None
        return result if result.is_finite() else None
    if isinstance(value, float):
        return coerce_decimal(str(value))
    return None


def _optional_rate(index: int, name: str, raw: Any) -> Decimal | None:
    if raw is None:
        return None
    rate = coerce_decimal(raw)
    if rate is None or rate < 0:
        raise InvalidPriceError(index, f"{name}={raw}")
    return rate


def validate_line(index: int, line: LineInput) -> LineInput:
    """
    Validate one line and return it with Decimal fields.

    Raises:
        InvalidQuantityError: quantity negative or not numeric.
        InvalidPriceError: unit price, VAT rate or FODEC rate negative or
            not numeric.
        InvalidDiscountError: discount outside [0, 100].
    """
    quantity = coerce_decimal(line.quantity)
    if quantity is None or quantity < 0:
        raise InvalidQuantityError(index, str(line.quantity))

    unit_price = coerce_decimal(line.unit_price)
    if unit_price is None or unit_price < 0:
        raise InvalidPriceError(index, str(line.unit_price))

    discount = coerce_decimal(line.discount_percent if line.discount_percent is not None else 0)
    if discount is None or discount < 0 or discount > HUNDRED:
        raise InvalidDiscountError(index, str(line.discount_percent))

    return LineInput(
        quantity=quantity,
        unit_price=unit_price,
        discount_percent=discount,
        product_id=line.product_id,
        description=line.description,
        line_id=line.line_id,
        vat_rate=_optional_rate(index, "vat_rate", line.vat_rate),
        fodec=line.fodec,
        fodec_rate=_optional_rate(index, "fodec_rate", line.fodec_rate),
    )


def validate_lines(
    lines: Sequence[LineInput],
    document_type: str | None = None,
    *,
    allow_empty: bool = True,
) -> tuple[LineInput, ...]:
    """
    Validate all lines, stopping at the first invalid one.

    Raises:
        EmptyDocumentError: no lines and ``allow_empty`` is False.
        DuplicateLineError: two lines carry the same ``line_id``.
        InvalidQuantityError / InvalidPriceError / InvalidDiscountError.
    """
    if not lines and not allow_empty:
        raise EmptyDocumentError(document_type or "document")

    seen: set = set()
    validated = []
    for index, line in enumerate(lines):
        if line.line_id is not None:
            if line.line_id in seen:
                raise DuplicateLineError(index, str(line.line_id))
            seen.add(line.line_id)
        validated.append(validate_line(index, line))
    return tuple(validated)
