"""Tests for French amount-in-words spelling."""

from decimal import Decimal

import pytest

from gescom_engines.amount_words import amount_in_words, spell_integer


class TestSpellInteger:

    @pytest.mark.parametrize("number,expected", [
        (0, "ZÉRO"),
        (1, "UN"),
        (16, "SEIZE"),
        (17, "DIX-SEPT"),
        (21, "VINGT-UN"),
        (70, "SOIXANTE-DIX"),
        (71, "SOIXANTE-ONZE"),
        (80, "QUATRE-VINGTS"),
        (81, "QUATRE-VINGT-UN"),
        (99, "QUATRE-VINGT-DIX-NEUF"),
        (100, "CENT"),
        (200, "DEUX CENT"),
        (305, "TROIS CENT CINQ"),
        (1000, "MILLE"),
        (2024, "DEUX MILLE VINGT-QUATRE"),
        (1_000_000, "UN MILLION"),
        (2_500_000, "DEUX MILLIONS CINQ CENT MILLE"),
        (1_000_000_000, "UN MILLIARD"),
    ])
    def test_spelling(self, number, expected):
        assert spell_integer(number) == expected


class TestAmountInWords:

    def test_dinars_and_millimes(self):
        assert amount_in_words(Decimal("1250.500")) == (
            "MILLE DEUX CENT CINQUANTE DINARS ET 500 MILLIMES"
        )

    def test_whole_amount_has_no_fraction(self):
        assert amount_in_words(Decimal("1190.000")) == "MILLE CENT QUATRE-VINGT-DIX DINARS"

    def test_singular_unit(self):
        assert amount_in_words(Decimal("1")) == "UN DINAR"

    def test_zero(self):
        assert amount_in_words(Decimal("0")) == "ZÉRO DINAR"

    def test_rounded_to_precision_first(self):
        assert amount_in_words(Decimal("10.0005")) == "DIX DINARS ET 1 MILLIMES"

    def test_negative_credit_note(self):
        assert amount_in_words(Decimal("-5")) == "MOINS CINQ DINARS"

    def test_euro_two_decimals(self):
        assert amount_in_words(Decimal("12.50"), "EUR", 2) == "DOUZE EUROS ET 50 CENTIMES"

    def test_unknown_currency_uses_code(self):
        assert amount_in_words(Decimal("3"), "XOF") == "TROIS XOFS"
