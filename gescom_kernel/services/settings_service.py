"""
Settings Service - builds the explicit EngineConfig from the settings store.

The settings store holds key -> JSON value rows as the desktop application
writes them.  SettingsService reads the keys the engine cares about and
produces a frozen ``EngineConfig`` that is passed to the other services.

Damaged configuration never blocks document work: a missing or malformed
row is logged as a ConfigurationError and that section keeps its safe
default (no taxes, 3 decimals, negative stock allowed).
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from gescom_config import loader
from gescom_config.schema import EngineConfig
from gescom_kernel.exceptions import ConfigurationError, MissingSettingError
from gescom_kernel.logging_config import get_logger
from gescom_kernel.models.settings import Setting

logger = get_logger("services.settings")


class SettingsService:
    """
    Read/write access to the settings store.

    Contract:
        load_config() always returns a usable EngineConfig.
        set() flushes but never commits.
    """

    def __init__(self, session: Session, defaults: EngineConfig | None = None):
        self._session = session
        self._defaults = defaults or loader.get_default_config()

    @property
    def defaults(self) -> EngineConfig:
        return self._defaults

    def _row(self, key: str) -> Setting | None:
        return self._session.execute(
            select(Setting).where(Setting.key == key)
        ).scalar_one_or_none()

    def get(self, key: str) -> Any:
        """
        Decoded value of a settings row.

        Raises:
            MissingSettingError: if the key is absent.
        """
        row = self._row(key)
        if row is None:
            raise MissingSettingError(key)
        return loader.decode_setting_value(row.value)

    def get_or_default(self, key: str, default: Any = None) -> Any:
        try:
            return self.get(key)
        except MissingSettingError:
            return default

    def set(self, key: str, value: Any) -> None:
        """Create or replace a settings row."""
        row = self._row(key)
        if row is None:
            self._session.add(Setting(key=key, value=value))
        else:
            row.value = value
        self._session.flush()
        logger.info("setting_saved", extra={"key": key})

    def _raw_rows(self) -> dict[str, Any]:
        rows = self._session.execute(
            select(Setting).where(Setting.key.in_(loader.SETTINGS_KEYS))
        ).scalars()
        return {row.key: row.value for row in rows}

    def _section(self, key: str, rows: dict[str, Any], parse, fallback):
        """Parse one section; on failure log and keep ``fallback``."""
        if key not in rows:
            return fallback
        try:
            return parse(rows[key], fallback)
        except (ValueError, TypeError, KeyError) as exc:
            error = ConfigurationError(f"Setting {key} is malformed: {exc}")
            logger.warning("setting_malformed_using_default", extra={
                "key": key,
                "error_code": error.code,
                "detail": str(exc),
            })
            return fallback

    def load_config(self) -> EngineConfig:
        """
        Build the EngineConfig from the settings store.

        Section precedence: ``generalSettings`` is read after
        ``invoiceSettings`` / ``stockSettings`` and wins where they overlap,
        matching the settings screen which saves it last.
        """
        base = self._defaults
        rows = self._raw_rows()

        currency = self._section(
            loader.CURRENCY_KEY, rows, loader.parse_currency_setting, base.currency,
        )
        stock = self._section(
            loader.STOCK_KEY, rows, loader.parse_stock_setting, base.stock,
        )
        invoice = self._section(
            loader.INVOICE_KEY, rows, loader.parse_invoice_setting, base.invoice,
        )
        invoice, stock = self._section(
            loader.GENERAL_KEY,
            rows,
            lambda value, pair: loader.parse_general_setting(value, *pair),
            (invoice, stock),
        )
        numbering = self._section(
            loader.NUMBERING_KEY, rows, loader.parse_numbering_setting, base.numbering,
        )

        config = EngineConfig(
            currency=currency,
            stock=stock,
            invoice=invoice,
            numbering=numbering,
            checksum=loader.settings_checksum(rows),
            source="settings",
        )
        logger.info("engine_config_loaded", extra={
            "checksum": config.checksum[:12],
            "decimal_places": config.decimal_places,
            "allow_negative_stock": config.allow_negative_stock,
            "missing_keys": sorted(set(loader.SETTINGS_KEYS) - set(rows)),
        })
        return config

    def checksum(self) -> str:
        return loader.settings_checksum(self._raw_rows())
