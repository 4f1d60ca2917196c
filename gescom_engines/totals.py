"""
Totals Engine -- line amounts, ordered tax breakdown and grand total.

Pure functions with no I/O: the ordered tax list and the currency precision
are parameters.  The same inputs always produce the same DocumentTotals, so a
stored document can be recomputed exactly from its lines and taxes.

Algorithm (rounding ROUND_HALF_UP after every arithmetic step):

    net(line)      = round(qty * unit_price * (1 - discount / 100))
    net_total      = sum(net(line))
    running_base   = net_total
    for tax in taxes (already ordered):
        fixed:       base = 0, amount = round(value)
        percentage:  base = net_total            if base is totalHT
                     base = running_base         if base is totalHTWithPreviousTaxes
                     amount = round(base * rate / 100)
        running_base += amount
    grand_total    = net_total + sum(amounts)

Per-line ``tax_amount`` applies the same ordered percentage taxes to the
line's own net amount (chained bases chain on the line's running amount).
Fixed taxes are document-level and add nothing to a line.  The document
breakdown is authoritative; per-line figures are informative and their sum
may differ from ``tax_total`` by rounding.

Usage:
    from gescom_engines.totals import TotalsCalculator

    totals = TotalsCalculator().compute(
        lines=[LineInput(quantity=Decimal("2"), unit_price=Decimal("500"))],
        taxes=catalog.get_applicable_taxes(DocumentType.FACTURE),
    )
    totals.grand_total  # Decimal("1190.000") with TVA 19%

Supplement:
    compute_line_vat() / group_vat_by_rate() give the per-product VAT view
    (product VAT rate, optional FODEC surcharge raising the VAT base), shown
    as "TVA par taux" on printed documents.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from gescom_engines.tracer import traced_engine
from gescom_kernel.db.types import MONEY_DECIMAL_PLACES, round_money
from gescom_kernel.domain.dtos import (
    ComputedLine,
    DocumentTotals,
    LineInput,
    TaxBreakdownEntry,
)
from gescom_kernel.domain.taxes import CalculationBase, FixedTax, PercentageTax, Tax
from gescom_kernel.logging_config import get_logger

logger = get_logger("engines.totals")

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Default FODEC surcharge rate (percent of HT)
DEFAULT_FODEC_RATE = Decimal("1")


def line_net_amount(line: LineInput, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """net = round(qty * unit_price * (1 - discount / 100))."""
    discount = line.discount_percent or ZERO
    gross = line.quantity * line.unit_price
    return round_money(gross * (HUNDRED - discount) / HUNDRED, decimal_places)


def _line_tax_amount(
    net_amount: Decimal, taxes: Sequence[Tax], decimal_places: int,
) -> Decimal:
    running = net_amount
    total = ZERO
    for tax in taxes:
        if isinstance(tax, FixedTax):
            continue
        if tax.calculation_base is CalculationBase.TOTAL_HT:
            base = net_amount
        else:
            base = running
        amount = round_money(base * tax.value / HUNDRED, decimal_places)
        total += amount
        running += amount
    return total


def apply_taxes(
    net_total: Decimal, taxes: Sequence[Tax], decimal_places: int = MONEY_DECIMAL_PLACES,
) -> tuple[TaxBreakdownEntry, ...]:
    """Apply ordered taxes to a document net total; one entry per tax."""
    breakdown: list[TaxBreakdownEntry] = []
    running_base = net_total
    for tax in taxes:
        calculation_base = None
        if isinstance(tax, FixedTax):
            base = ZERO
            amount = round_money(tax.value, decimal_places)
        else:
            calculation_base = tax.calculation_base.value
            if tax.calculation_base is CalculationBase.TOTAL_HT:
                base = net_total
            else:
                base = running_base
            amount = round_money(base * tax.value / HUNDRED, decimal_places)
        breakdown.append(
            TaxBreakdownEntry(
                tax_id=tax.tax_id,
                name=tax.name,
                kind=tax.kind.value,
                base=base,
                amount=amount,
                value=tax.value,
                calculation_base=calculation_base,
            )
        )
        running_base += amount
    return tuple(breakdown)


class TotalsCalculator:
    """
    Compute document totals.

    Pure -- no I/O, no database access, no clock.  Never raises for
    validated input (see gescom_kernel.domain.validation).
    """

    def __init__(self, decimal_places: int = MONEY_DECIMAL_PLACES):
        self.decimal_places = decimal_places

    @traced_engine("totals", "1.0", fingerprint_fields=("lines", "taxes", "decimal_places"))
    def compute(
        self,
        *,
        lines: Sequence[LineInput],
        taxes: Sequence[Tax],
        decimal_places: int | None = None,
    ) -> DocumentTotals:
        """
        Compute line amounts, tax breakdown and totals.

        Args:
            lines: Validated line inputs.
            taxes: Taxes in application order (TaxCatalog output).
            decimal_places: Currency precision; defaults to the calculator's.

        Returns:
            DocumentTotals
        """
        places = self.decimal_places if decimal_places is None else decimal_places

        computed: list[ComputedLine] = []
        net_total = ZERO
        for line in lines:
            net = line_net_amount(line, places)
            line_tax = _line_tax_amount(net, taxes, places)
            computed.append(
                ComputedLine(
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    discount_percent=line.discount_percent or ZERO,
                    net_amount=net,
                    tax_amount=line_tax,
                    gross_amount=net + line_tax,
                    product_id=line.product_id,
                    description=line.description,
                    line_id=line.line_id,
                )
            )
            net_total += net

        net_total = round_money(net_total, places)
        breakdown = apply_taxes(net_total, taxes, places)
        tax_total = sum((entry.amount for entry in breakdown), ZERO)
        grand_total = net_total + tax_total

        logger.debug("totals_computed", extra={
            "line_count": len(computed),
            "tax_count": len(breakdown),
            "net_total": str(net_total),
            "tax_total": str(tax_total),
            "grand_total": str(grand_total),
        })

        return DocumentTotals(
            lines=tuple(computed),
            tax_breakdown=breakdown,
            net_total=net_total,
            tax_total=tax_total,
            grand_total=grand_total,
            decimal_places=places,
        )


def compute_totals(
    lines: Sequence[LineInput],
    taxes: Sequence[Tax],
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> DocumentTotals:
    """Convenience wrapper around TotalsCalculator.compute()."""
    return TotalsCalculator(decimal_places).compute(
        lines=lines, taxes=taxes, decimal_places=decimal_places,
    )


# =============================================================================
# Per-product VAT ("TVA par taux")
# =============================================================================


@dataclass(frozen=True)
class LineVat:
    """VAT figures of one line, FODEC included."""

    net_amount: Decimal
    vat_rate: Decimal
    fodec_amount: Decimal
    vat_base: Decimal
    vat_amount: Decimal

    @property
    def gross_amount(self) -> Decimal:
        return self.net_amount + self.fodec_amount + self.vat_amount


@dataclass(frozen=True)
class VatGroup:
    """VAT totals for one rate."""

    rate: Decimal
    base: Decimal
    amount: Decimal

    @property
    def label(self) -> str:
        return f"TVA {self.rate.normalize():f}%"


def compute_line_vat(
    net_amount: Decimal,
    vat_rate: Decimal,
    *,
    fodec_rate: Decimal | None = None,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> LineVat:
    """
    VAT of one line at the product's rate.

    When ``fodec_rate`` is given the FODEC surcharge is computed on the net
    amount and added to the VAT base:

        fodec    = round(net * fodec_rate / 100)
        vat_base = net + fodec
        vat      = round(vat_base * vat_rate / 100)
    """
    fodec = ZERO
    if fodec_rate is not None:
        fodec = round_money(net_amount * fodec_rate / HUNDRED, decimal_places)
    vat_base = net_amount + fodec
    vat = round_money(vat_base * vat_rate / HUNDRED, decimal_places)
    return LineVat(
        net_amount=net_amount,
        vat_rate=vat_rate,
        fodec_amount=fodec,
        vat_base=vat_base,
        vat_amount=vat,
    )


def compute_lines_vat(
    lines: Iterable[LineInput],
    *,
    fodec_rate: Decimal = DEFAULT_FODEC_RATE,
    default_vat_rate: Decimal = ZERO,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> tuple[LineVat, ...]:
    """
    compute_line_vat() for every line.

    FODEC applies only to lines flagged ``fodec``, at the line's own
    ``fodec_rate`` when the product carries one, else at ``fodec_rate``.
    """
    result = []
    for line in lines:
        net = line_net_amount(line, decimal_places)
        rate = line.vat_rate if line.vat_rate is not None else default_vat_rate
        line_fodec_rate = None
        if line.fodec:
            line_fodec_rate = line.fodec_rate if line.fodec_rate is not None else fodec_rate
        result.append(
            compute_line_vat(
                net,
                rate,
                fodec_rate=line_fodec_rate,
                decimal_places=decimal_places,
            )
        )
    return tuple(result)


def group_vat_by_rate(line_vats: Iterable[LineVat]) -> tuple[VatGroup, ...]:
    """
    Sum VAT base and amount per rate, ascending by rate.

    Zero-rate lines are left out (nothing to declare).
    """
    bases: dict[Decimal, Decimal] = {}
    amounts: dict[Decimal, Decimal] = {}
    for vat in line_vats:
        if vat.vat_rate <= ZERO:
            continue
        key = vat.vat_rate.normalize()
        bases[key] = bases.get(key, ZERO) + vat.vat_base
        amounts[key] = amounts.get(key, ZERO) + vat.vat_amount
    return tuple(
        VatGroup(rate=rate, base=bases[rate], amount=amounts[rate])
        for rate in sorted(bases)
    )
