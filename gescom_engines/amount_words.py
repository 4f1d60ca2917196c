"""
Amount in words -- French spelled-out amounts for printed documents.

    amount_in_words(Decimal("1250.500"))
    -> "MILLE DEUX CENT CINQUANTE DINARS ET 500 MILLIMES"

The integer part is spelled out in upper-case French; the fractional part is
written in digits followed by the sub-unit name, as on Tunisian invoices.
Spelling follows the invoices already issued by the application: hyphenated
compounds without "ET" (VINGT-UN), invariable CENT.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_DOWN

from gescom_kernel.db.types import MONEY_DECIMAL_PLACES, round_money

UNITS = (
    "", "UN", "DEUX", "TROIS", "QUATRE", "CINQ", "SIX", "SEPT", "HUIT", "NEUF",
    "DIX", "ONZE", "DOUZE", "TREIZE", "QUATORZE", "QUINZE", "SEIZE",
    "DIX-SEPT", "DIX-HUIT", "DIX-NEUF",
)

TENS = (
    "", "", "VINGT", "TRENTE", "QUARANTE", "CINQUANTE", "SOIXANTE", "SOIXANTE",
    "QUATRE-VINGT", "QUATRE-VINGT",
)

# currency code -> (singular, plural, sub-unit)
CURRENCY_NAMES: dict[str, tuple[str, str, str]] = {
    "TND": ("DINAR", "DINARS", "MILLIMES"),
    "EUR": ("EURO", "EUROS", "CENTIMES"),
    "USD": ("DOLLAR", "DOLLARS", "CENTS"),
    "MAD": ("DIRHAM", "DIRHAMS", "CENTIMES"),
    "DZD": ("DINAR", "DINARS", "CENTIMES"),
    "GBP": ("LIVRE", "LIVRES", "PENCE"),
    "CHF": ("FRANC", "FRANCS", "CENTIMES"),
    "CAD": ("DOLLAR", "DOLLARS", "CENTS"),
}


def currency_names(currency: str) -> tuple[str, str, str]:
    code = currency.upper()
    return CURRENCY_NAMES.get(code, (code, f"{code}S", "CENTIMES"))


def _below_hundred(num: int) -> str:
    if num < 20:
        return UNITS[num]
    tens_digit, units_digit = divmod(num, 10)
    if tens_digit in (7, 9):
        # 70-79 and 90-99 are built on 60 / 80 + (10..19)
        return f"{TENS[tens_digit]}-{UNITS[10 + units_digit]}"
    if units_digit == 0:
        return "QUATRE-VINGTS" if tens_digit == 8 else TENS[tens_digit]
    return f"{TENS[tens_digit]}-{UNITS[units_digit]}"


def spell_hundreds(num: int) -> str:
    """Spell 0..999 ('' for 0)."""
    words = []
    hundreds, rest = divmod(num, 100)
    if hundreds == 1:
        words.append("CENT")
    elif hundreds > 1:
        words.append(f"{UNITS[hundreds]} CENT")
    if rest:
        words.append(_below_hundred(rest))
    return " ".join(words)


_SCALES = (
    (1_000_000_000, "MILLIARD", "MILLIARDS"),
    (1_000_000, "MILLION", "MILLIONS"),
)


def spell_integer(num: int) -> str:
    """Spell a non-negative integer in upper-case French."""
    if num == 0:
        return "ZÉRO"
    words = []
    for scale, singular, plural in _SCALES:
        count, num = divmod(num, scale)
        if count == 1:
            words.append(f"UN {singular}")
        elif count > 1:
            words.append(f"{spell_integer(count)} {plural}")
    thousands, num = divmod(num, 1000)
    if thousands == 1:
        words.append("MILLE")
    elif thousands > 1:
        words.append(f"{spell_hundreds(thousands)} MILLE")
    if num:
        words.append(spell_hundreds(num))
    return " ".join(words)


def amount_in_words(
    amount: Decimal,
    currency: str = "TND",
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> str:
    """
    Spell a monetary amount.

    The amount is rounded to ``decimal_places`` first; a zero fractional part
    is omitted.  Negative amounts (credit notes) are prefixed with "MOINS".
    """
    if amount < 0:
        return "MOINS " + amount_in_words(-amount, currency, decimal_places)

    rounded = round_money(amount, decimal_places)
    whole = int(rounded.to_integral_value(rounding=ROUND_DOWN))
    fraction = int((rounded - whole).scaleb(decimal_places)) if decimal_places > 0 else 0

    singular, plural, sub_unit = currency_names(currency)
    unit_name = plural if whole > 1 else singular
    result = f"{spell_integer(whole)} {unit_name}"

    if fraction > 0:
        result += f" ET {fraction} {sub_unit}"
    return result
