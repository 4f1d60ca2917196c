"""
Tests for the configuration loader.

Covers:
- Bundled defaults
- Operator YAML layered over the defaults
- Checksums identify the source data
- Strict parsing errors (fallback is the caller's decision)
"""

from decimal import Decimal

import pytest
import yaml

from gescom_config.loader import (
    compute_checksum,
    get_default_config,
    load_config_file,
    parse_engine_config,
    parse_numbering_setting,
)
from gescom_config.schema import CurrencyConfig, NumberingConfig


class TestDefaults:

    def test_bundled_defaults(self):
        config = get_default_config()

        assert config.source == "defaults"
        assert config.currency.code == "TND"
        assert config.decimal_places == 3
        assert config.allow_negative_stock is True
        assert config.invoice.fodec_rate == Decimal("1")
        assert {tag: n.prefix for tag, n in config.numbering.items()} == {
            "facture": "FA",
            "devis": "DV",
            "bonLivraison": "BL",
            "commandeFournisseur": "CF",
            "avoir": "AV",
        }

    def test_defaults_are_cached_and_frozen(self):
        config = get_default_config()
        assert get_default_config() is config
        with pytest.raises(TypeError):
            config.numbering["facture"] = NumberingConfig(prefix="X")


class TestYamlFile:

    def test_file_overrides_sections_key_by_key(self, tmp_path):
        path = tmp_path / "gescom.yaml"
        path.write_text(yaml.safe_dump({
            "currency": {"code": "EUR", "decimals": 2},
            "stock": {"allow_negative_stock": False},
        }))

        config = load_config_file(path)

        assert config.currency.code == "EUR"
        assert config.currency.symbol == "TND"
        assert config.decimal_places == 2
        assert config.allow_negative_stock is False
        assert config.numbering["facture"].prefix == "FA"
        assert config.source == str(path)

    def test_legacy_tag_in_yaml_numbering(self):
        config = parse_engine_config({"numbering": {"factures": {"prefix": "INV"}}})
        assert config.numbering["facture"].prefix == "INV"
        assert config.numbering["facture"].include_year is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "absent.yaml")

    def test_bad_boolean(self):
        with pytest.raises(TypeError):
            parse_engine_config({"stock": {"allow_negative_stock": "maybe"}})


class TestChecksum:

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_value_change_detected(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestSchema:

    def test_currency_decimals_range(self):
        with pytest.raises(ValueError):
            CurrencyConfig(decimals=7)

    def test_numbering_prefix_required(self):
        with pytest.raises(ValueError):
            NumberingConfig(prefix="")

    def test_numbering_setting_keeps_unlisted_types(self):
        base = get_default_config().numbering
        parsed = parse_numbering_setting({"devis": {"prefix": "Q", "currentNumber": "9"}}, base)

        assert parsed["devis"].prefix == "Q"
        assert parsed["devis"].current_number == 9
        assert parsed["avoir"] == base["avoir"]
