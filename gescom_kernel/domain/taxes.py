"""
Tax domain types -- tagged variant over percentage and fixed taxes.

Responsibility:
    Typed, immutable view of the tax configuration.  A tax is either a
    PercentageTax (rate + calculation base) or a FixedTax (flat amount, no
    base), so a fixed tax carrying a calculation base cannot be built.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Built by TaxCatalogService from the
    tax configuration store, consumed by gescom_engines.

Invariants enforced:
    - Values are Decimal and non-negative.
    - ``order`` drives application sequence; ties are broken by the
      catalog's insertion order, never by the type itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Union

from gescom_kernel.domain.documents import DEFAULT_TAXABLE_TYPES, DocumentType


class TaxKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CalculationBase(str, Enum):
    """What a percentage tax is computed on."""

    TOTAL_HT = "totalHT"
    TOTAL_HT_WITH_PREVIOUS_TAXES = "totalHTWithPreviousTaxes"

    @classmethod
    def parse(cls, raw: "CalculationBase | str | None") -> "CalculationBase":
        """
        Normalise a stored base, including legacy spellings.

        None maps to TOTAL_HT (rows written before the field existed).

        Raises:
            ValueError: if the spelling is unknown.
        """
        if raw is None:
            return cls.TOTAL_HT
        if isinstance(raw, cls):
            return raw
        try:
            return LEGACY_CALCULATION_BASES[raw.strip()]
        except KeyError:
            raise ValueError(f"Unknown calculation base: {raw!r}") from None


LEGACY_CALCULATION_BASES: dict[str, CalculationBase] = {
    "HT": CalculationBase.TOTAL_HT,
    "totalHT": CalculationBase.TOTAL_HT,
    "HT_plus_taxes_precedentes": CalculationBase.TOTAL_HT_WITH_PREVIOUS_TAXES,
    "HT_plus_previous_taxes": CalculationBase.TOTAL_HT_WITH_PREVIOUS_TAXES,
    "totalHTWithPreviousTaxes": CalculationBase.TOTAL_HT_WITH_PREVIOUS_TAXES,
}


def _check_value(tax_id: str, value: Decimal) -> None:
    if not isinstance(value, Decimal):
        raise TypeError(f"Tax {tax_id}: value must be Decimal, not {type(value).__name__}")
    if value < 0:
        raise ValueError(f"Tax {tax_id}: value cannot be negative: {value}")


@dataclass(frozen=True, slots=True)
class PercentageTax:
    """A rate applied to a base (TVA 19%, FODEC 1% ...)."""

    kind: ClassVar[TaxKind] = TaxKind.PERCENTAGE

    tax_id: str
    name: str
    value: Decimal
    calculation_base: CalculationBase = CalculationBase.TOTAL_HT
    applicable_document_types: frozenset[DocumentType] = DEFAULT_TAXABLE_TYPES
    order: int = 0
    active: bool = True
    is_standard: bool = False

    def __post_init__(self) -> None:
        _check_value(self.tax_id, self.value)

    def with_base(self, base: CalculationBase) -> "PercentageTax":
        return PercentageTax(
            tax_id=self.tax_id,
            name=self.name,
            value=self.value,
            calculation_base=base,
            applicable_document_types=self.applicable_document_types,
            order=self.order,
            active=self.active,
            is_standard=self.is_standard,
        )


@dataclass(frozen=True, slots=True)
class FixedTax:
    """A flat amount added once per document (timbre fiscal)."""

    kind: ClassVar[TaxKind] = TaxKind.FIXED

    tax_id: str
    name: str
    value: Decimal
    applicable_document_types: frozenset[DocumentType] = DEFAULT_TAXABLE_TYPES
    order: int = 0
    active: bool = True
    is_standard: bool = False

    def __post_init__(self) -> None:
        _check_value(self.tax_id, self.value)


Tax = Union[PercentageTax, FixedTax]


def applies_to(tax: Tax, document_type: DocumentType | str) -> bool:
    """True if the tax is active and configured for this document type."""
    return tax.active and DocumentType.parse(document_type) in tax.applicable_document_types


@dataclass(frozen=True, slots=True)
class TaxGroupMember:
    tax_id: str
    order_in_group: int = 0
    calculation_base_override: CalculationBase | None = None


@dataclass(frozen=True, slots=True)
class TaxGroup:
    """A named bundle of taxes applied together in a fixed sequence."""

    group_id: str
    name: str
    members: tuple[TaxGroupMember, ...] = field(default_factory=tuple)
    description: str | None = None
    active: bool = True
