"""
gescom_config -- typed engine configuration.

Runtime configuration is an explicit ``EngineConfig`` passed to the services.
It is built by ``gescom_kernel.services.settings_service.SettingsService``
from the settings store, or loaded from YAML for scripts and tests.
"""

from gescom_config.loader import get_default_config, load_config_file
from gescom_config.schema import (
    CurrencyConfig,
    EngineConfig,
    InvoiceConfig,
    NumberingConfig,
    StockConfig,
)

__all__ = [
    "get_default_config",
    "load_config_file",
    "CurrencyConfig",
    "EngineConfig",
    "InvoiceConfig",
    "NumberingConfig",
    "StockConfig",
]
