"""
Tests for SettingsService.

Covers:
- Reading and writing settings rows
- EngineConfig built from the settings store
- Malformed rows fall back to safe defaults (logged, never raised)
- generalSettings precedence over invoiceSettings / stockSettings
"""

import json
from decimal import Decimal

import pytest

from gescom_kernel.exceptions import MissingSettingError
from gescom_kernel.services.settings_service import SettingsService


@pytest.fixture
def settings(session) -> SettingsService:
    return SettingsService(session)


class TestRows:

    def test_set_and_get(self, settings):
        settings.set("stockSettings", {"allowNegativeStock": False})
        assert settings.get("stockSettings") == {"allowNegativeStock": False}

    def test_set_replaces(self, settings):
        settings.set("stockSettings", {"allowNegativeStock": False})
        settings.set("stockSettings", {"allowNegativeStock": True})
        assert settings.get("stockSettings") == {"allowNegativeStock": True}

    def test_json_text_values_decoded(self, settings):
        settings.set("currencySettings", json.dumps({"code": "EUR", "decimals": 2}))
        assert settings.get("currencySettings")["code"] == "EUR"

    def test_missing_key(self, settings):
        with pytest.raises(MissingSettingError):
            settings.get("numbering")
        assert settings.get_or_default("numbering", {}) == {}


class TestLoadConfig:

    def test_empty_store_gives_defaults(self, settings):
        config = settings.load_config()

        assert config.source == "settings"
        assert config.decimal_places == 3
        assert config.allow_negative_stock is True
        assert config.numbering["facture"].prefix == "FA"

    def test_values_read(self, settings):
        settings.set("currencySettings", {"code": "EUR", "symbol": "€", "decimals": 2})
        settings.set("stockSettings", {"allowNegativeStock": False})
        settings.set("invoiceSettings", {"useEcheanceDate": False, "fodecRate": "1.5"})

        config = settings.load_config()

        assert config.currency.code == "EUR"
        assert config.decimal_places == 2
        assert config.allow_negative_stock is False
        assert config.invoice.use_due_date is False
        assert config.invoice.fodec_rate == Decimal("1.5")

    def test_numbering_with_legacy_tags_and_default_year(self, settings):
        settings.set("numbering", {
            "factures": {"prefix": "FAC", "startNumber": 1, "currentNumber": 57},
            "unknownTag": {"prefix": "X"},
        })

        numbering = settings.load_config().numbering

        assert numbering["facture"].prefix == "FAC"
        assert numbering["facture"].current_number == 57
        assert numbering["facture"].include_year is True
        assert numbering["devis"].prefix == "DV"
        assert "unknownTag" not in numbering

    def test_malformed_section_falls_back(self, settings, captured_logs):
        settings.set("currencySettings", {"decimals": "three"})
        settings.set("stockSettings", {"allowNegativeStock": False})

        config = settings.load_config()

        assert config.decimal_places == 3
        # other sections still read
        assert config.allow_negative_stock is False
        warnings = [
            r for r in captured_logs() if r["message"] == "setting_malformed_using_default"
        ]
        assert warnings[0]["key"] == "currencySettings"
        assert warnings[0]["error_code"] == "CONFIGURATION_ERROR"

    def test_unparseable_json_falls_back(self, settings):
        settings.set("numbering", "{not json")
        assert settings.load_config().numbering["facture"].prefix == "FA"

    def test_out_of_range_decimals_falls_back(self, settings):
        settings.set("currencySettings", {"decimals": 12})
        assert settings.load_config().decimal_places == 3

    def test_general_settings_win(self, settings):
        settings.set("stockSettings", {"allowNegativeStock": True})
        settings.set("invoiceSettings", {"useEcheanceDate": True})
        settings.set("generalSettings", {
            "allowNegativeStock": False,
            "useEcheanceDate": False,
            "autoEnableFodec": True,
        })

        config = settings.load_config()

        assert config.allow_negative_stock is False
        assert config.invoice.use_due_date is False
        assert config.invoice.auto_enable_fodec is True

    def test_checksum_tracks_changes(self, settings):
        before = settings.checksum()
        settings.set("stockSettings", {"allowNegativeStock": False})
        after = settings.checksum()

        assert before != after
        assert settings.load_config().checksum == after
