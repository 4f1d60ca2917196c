"""
Configuration Loader (``gescom_config.loader``).

Responsibility
--------------
Parse engine configuration from two sources into ``gescom_config.schema``
dataclasses:

* YAML files (bundled ``defaults.yaml`` or an operator-supplied file), read
  with ``yaml.safe_load``;
* settings-store rows as the desktop application writes them
  (``numbering``, ``stockSettings``, ``currencySettings``,
  ``invoiceSettings``, ``generalSettings``; JSON values, camelCase fields,
  legacy plural document tags).

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` / ``KeyError`` / ``TypeError`` with a
  descriptive message.  Falling back to defaults is the caller's decision
  (SettingsService).
* A numbering entry without ``includeYear`` gets ``include_year=True``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the source
  data for configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Malformed JSON in a settings row  -> ``ValueError`` (json.JSONDecodeError).
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

import yaml

from gescom_config.schema import (
    CurrencyConfig,
    EngineConfig,
    InvoiceConfig,
    NumberingConfig,
    StockConfig,
)
from gescom_kernel.domain.documents import DocumentType
from gescom_kernel.exceptions import UnknownDocumentTypeError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# Settings-store keys read by the engine
NUMBERING_KEY = "numbering"
STOCK_KEY = "stockSettings"
CURRENCY_KEY = "currencySettings"
INVOICE_KEY = "invoiceSettings"
GENERAL_KEY = "generalSettings"

SETTINGS_KEYS = (NUMBERING_KEY, STOCK_KEY, CURRENCY_KEY, INVOICE_KEY, GENERAL_KEY)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: Any) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise TypeError(f"{name} must be a boolean, got {value!r}")


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise TypeError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise TypeError(f"{name} must be an integer, got {value!r}")


def _as_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise TypeError(f"{name} must be a number, got {value!r}")
    if isinstance(value, (int, str, Decimal)):
        return Decimal(str(value))
    if isinstance(value, float):
        return Decimal(str(value))
    raise TypeError(f"{name} must be a number, got {value!r}")


# ---------------------------------------------------------------------------
# YAML (snake_case) parsing
# ---------------------------------------------------------------------------


def parse_numbering(data: Mapping[str, Any]) -> dict[str, NumberingConfig]:
    """Parse a ``numbering`` mapping keyed by (possibly legacy) document tag."""
    result: dict[str, NumberingConfig] = {}
    for tag, entry in data.items():
        doc_type = DocumentType.parse(tag)
        result[doc_type.value] = NumberingConfig(
            prefix=str(entry["prefix"]),
            start_number=_as_int(entry.get("start_number", 1), "start_number"),
            current_number=_as_int(entry.get("current_number", 1), "current_number"),
            include_year=_as_bool(entry.get("include_year", True), "include_year"),
        )
    return result


def parse_engine_config(data: Mapping[str, Any], *, source: str = "yaml") -> EngineConfig:
    """
    Parse an EngineConfig from a YAML-shaped dict.

    Sections missing from ``data`` take the schema defaults.
    """
    currency = data.get("currency") or {}
    stock = data.get("stock") or {}
    invoice = data.get("invoice") or {}
    defaults_currency = CurrencyConfig()
    defaults_invoice = InvoiceConfig()

    return EngineConfig(
        currency=CurrencyConfig(
            code=str(currency.get("code", defaults_currency.code)),
            symbol=str(currency.get("symbol", defaults_currency.symbol)),
            decimals=_as_int(currency.get("decimals", defaults_currency.decimals), "decimals"),
        ),
        stock=StockConfig(
            allow_negative_stock=_as_bool(
                stock.get("allow_negative_stock", True), "allow_negative_stock",
            ),
        ),
        invoice=InvoiceConfig(
            use_due_date=_as_bool(invoice.get("use_due_date", True), "use_due_date"),
            default_due_days=_as_int(
                invoice.get("default_due_days", defaults_invoice.default_due_days),
                "default_due_days",
            ),
            auto_enable_fodec=_as_bool(
                invoice.get("auto_enable_fodec", False), "auto_enable_fodec",
            ),
            fodec_rate=_as_decimal(
                invoice.get("fodec_rate", defaults_invoice.fodec_rate), "fodec_rate",
            ),
        ),
        numbering=parse_numbering(data.get("numbering") or {}),
        checksum=compute_checksum(data),
        source=source,
    )


@functools.lru_cache(maxsize=1)
def get_default_config() -> EngineConfig:
    """Safe defaults from the bundled defaults.yaml."""
    return parse_engine_config(load_yaml_file(DEFAULTS_PATH), source="defaults")


def load_config_file(path: Path | str) -> EngineConfig:
    """
    Load an operator YAML file layered over the bundled defaults.

    Top-level sections present in the file replace the default section key by
    key; numbering entries replace the default entry for their type.
    """
    defaults = load_yaml_file(DEFAULTS_PATH)
    overrides = load_yaml_file(Path(path))
    merged: dict[str, Any] = {}
    for section in set(defaults) | set(overrides):
        base = defaults.get(section) or {}
        extra = overrides.get(section) or {}
        merged[section] = {**base, **extra}
    return parse_engine_config(merged, source=str(path))


# ---------------------------------------------------------------------------
# Settings-store (camelCase JSON) parsing
# ---------------------------------------------------------------------------


def decode_setting_value(value: Any) -> Any:
    """Settings rows may hold JSON text or an already-decoded value."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value


def _require_mapping(value: Any, key: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"Setting {key} must be an object, got {type(value).__name__}")
    return value


def parse_numbering_setting(
    value: Any, base: Mapping[str, NumberingConfig],
) -> dict[str, NumberingConfig]:
    """
    Parse the ``numbering`` row.

    Unknown document tags are ignored; a missing ``includeYear`` defaults to
    True; types absent from the row keep their ``base`` entry.
    """
    data = _require_mapping(decode_setting_value(value), NUMBERING_KEY)
    result = dict(base)
    for tag, entry in data.items():
        try:
            doc_type = DocumentType.parse(tag)
        except UnknownDocumentTypeError:
            continue
        entry = _require_mapping(entry, f"{NUMBERING_KEY}.{tag}")
        default = base.get(doc_type.value)
        result[doc_type.value] = NumberingConfig(
            prefix=str(entry.get("prefix") or (default.prefix if default else "")),
            start_number=_as_int(entry.get("startNumber", 1), "startNumber"),
            current_number=_as_int(entry.get("currentNumber", 1), "currentNumber"),
            include_year=_as_bool(entry.get("includeYear", True), "includeYear"),
        )
    return result


def parse_stock_setting(value: Any, base: StockConfig) -> StockConfig:
    data = _require_mapping(decode_setting_value(value), STOCK_KEY)
    if "allowNegativeStock" not in data:
        return base
    return StockConfig(
        allow_negative_stock=_as_bool(data["allowNegativeStock"], "allowNegativeStock"),
    )


def parse_currency_setting(value: Any, base: CurrencyConfig) -> CurrencyConfig:
    data = _require_mapping(decode_setting_value(value), CURRENCY_KEY)
    return CurrencyConfig(
        code=str(data.get("code", base.code)),
        symbol=str(data.get("symbol", base.symbol)),
        decimals=_as_int(data.get("decimals", base.decimals), "decimals"),
    )


def parse_invoice_setting(value: Any, base: InvoiceConfig) -> InvoiceConfig:
    data = _require_mapping(decode_setting_value(value), INVOICE_KEY)
    changes: dict[str, Any] = {}
    if "useEcheanceDate" in data:
        changes["use_due_date"] = _as_bool(data["useEcheanceDate"], "useEcheanceDate")
    if "defaultDueDays" in data:
        changes["default_due_days"] = _as_int(data["defaultDueDays"], "defaultDueDays")
    if "fodecRate" in data:
        changes["fodec_rate"] = _as_decimal(data["fodecRate"], "fodecRate")
    return dataclasses.replace(base, **changes)


def parse_general_setting(
    value: Any, invoice: InvoiceConfig, stock: StockConfig,
) -> tuple[InvoiceConfig, StockConfig]:
    """``generalSettings`` carries autoEnableFodec, useEcheanceDate and allowNegativeStock."""
    data = _require_mapping(decode_setting_value(value), GENERAL_KEY)
    invoice_changes: dict[str, Any] = {}
    if "autoEnableFodec" in data:
        invoice_changes["auto_enable_fodec"] = _as_bool(data["autoEnableFodec"], "autoEnableFodec")
    if "useEcheanceDate" in data:
        invoice_changes["use_due_date"] = _as_bool(data["useEcheanceDate"], "useEcheanceDate")
    if "allowNegativeStock" in data:
        stock = StockConfig(
            allow_negative_stock=_as_bool(data["allowNegativeStock"], "allowNegativeStock"),
        )
    return dataclasses.replace(invoice, **invoice_changes), stock


def settings_checksum(rows: Mapping[str, Any]) -> str:
    """Checksum of the settings rows the engine reads."""
    return compute_checksum({key: rows.get(key) for key in SETTINGS_KEYS})
