"""
Module: gescom_kernel.db.types
Responsibility: The single sanctioned rounding helper for monetary amounts.

CRITICAL: No floats anywhere.  Quantities, prices, rates and amounts are
Decimal (mapped to NUMERIC(38, 9) by Base.type_annotation_map); rounding goes
through round_money() (ROUND_HALF_UP).
"""

from decimal import Decimal, ROUND_HALF_UP

# Default number of decimal places for amounts (millimes)
MONEY_DECIMAL_PLACES = 3


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """
    Round a monetary amount with ROUND_HALF_UP.

    Args:
        value: Decimal value to round.
        decimal_places: Number of decimal places (default 3).

    Returns:
        Rounded Decimal value.
    """
    if decimal_places <= 0:
        return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)
