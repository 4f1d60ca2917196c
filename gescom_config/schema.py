"""
Engine configuration schema.

Frozen dataclasses describing everything the engine reads from the settings
store: currency precision, negative-stock policy, invoice options and the
per-document-type numbering defaults.  An EngineConfig is passed explicitly
to the services; nothing reads settings from global state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class CurrencyConfig:
    """Currency used for amounts and amount-in-words."""

    code: str = "TND"
    symbol: str = "TND"
    decimals: int = 3

    def __post_init__(self) -> None:
        if not 0 <= self.decimals <= 6:
            raise ValueError(f"Currency decimals must be between 0 and 6, got {self.decimals}")


@dataclass(frozen=True)
class StockConfig:
    allow_negative_stock: bool = True


@dataclass(frozen=True)
class InvoiceConfig:
    """Invoice options (due date toggle, FODEC defaults)."""

    use_due_date: bool = True
    default_due_days: int = 30
    auto_enable_fodec: bool = False
    fodec_rate: Decimal = Decimal("1")


@dataclass(frozen=True)
class NumberingConfig:
    """Numbering defaults for one document type."""

    prefix: str
    start_number: int = 1
    current_number: int = 1
    include_year: bool = True

    def __post_init__(self) -> None:
        if not self.prefix:
            raise ValueError("Numbering prefix cannot be empty")
        if self.start_number < 0 or self.current_number < 0:
            raise ValueError("Numbering counters cannot be negative")


@dataclass(frozen=True)
class EngineConfig:
    """
    Complete engine configuration.

    ``numbering`` is keyed by canonical document type tag
    (``facture``, ``devis``, ``bonLivraison``, ``commandeFournisseur``,
    ``avoir``).  ``checksum`` identifies the source data.
    """

    currency: CurrencyConfig = field(default_factory=CurrencyConfig)
    stock: StockConfig = field(default_factory=StockConfig)
    invoice: InvoiceConfig = field(default_factory=InvoiceConfig)
    numbering: Mapping[str, NumberingConfig] = field(default_factory=dict)
    checksum: str = ""
    source: str = "defaults"

    def __post_init__(self) -> None:
        if not isinstance(self.numbering, MappingProxyType):
            object.__setattr__(self, "numbering", MappingProxyType(dict(self.numbering)))

    @property
    def decimal_places(self) -> int:
        return self.currency.decimals

    @property
    def allow_negative_stock(self) -> bool:
        return self.stock.allow_negative_stock

    def numbering_for(self, document_type: str) -> NumberingConfig | None:
        return self.numbering.get(document_type)
