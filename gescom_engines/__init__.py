"""
Module: gescom_engines
Responsibility:
    Pure calculation engines: document totals, the tax catalog, per-product
    VAT, amount in words.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  May import
    gescom_kernel.domain, gescom_kernel.db.types and logging only.

Invariants enforced:
    - Purity: engines never read the clock or the database.
    - Decimal-only arithmetic, ROUND_HALF_UP per step.
    - Determinism: identical inputs always produce identical outputs.
"""

from gescom_engines.amount_words import amount_in_words
from gescom_engines.tax_catalog import TaxCatalog
from gescom_engines.totals import (
    LineVat,
    TotalsCalculator,
    VatGroup,
    compute_line_vat,
    compute_lines_vat,
    compute_totals,
    group_vat_by_rate,
)

__all__ = [
    "amount_in_words",
    "TaxCatalog",
    "TotalsCalculator",
    "LineVat",
    "VatGroup",
    "compute_line_vat",
    "compute_lines_vat",
    "compute_totals",
    "group_vat_by_rate",
]
