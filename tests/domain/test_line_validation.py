"""Tests for line validation run before any calculation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from gescom_kernel.domain.dtos import LineInput
from gescom_kernel.domain.validation import validate_line, validate_lines
from gescom_kernel.exceptions import (
    DuplicateLineError,
    EmptyDocumentError,
    InvalidDiscountError,
    InvalidPriceError,
    InvalidQuantityError,
)


def _line(quantity="1", price="10", discount="0", **kwargs):
    return LineInput(quantity=quantity, unit_price=price, discount_percent=discount, **kwargs)


class TestValidateLine:

    def test_coerces_to_decimal(self):
        line = validate_line(0, _line(quantity="2.5", price=3, discount="10"))
        assert line.quantity == Decimal("2.5")
        assert line.unit_price == Decimal("3")
        assert line.discount_percent == Decimal("10")

    def test_float_goes_through_str(self):
        assert validate_line(0, _line(price=0.1)).unit_price == Decimal("0.1")

    def test_zero_quantity_allowed(self):
        assert validate_line(0, _line(quantity="0")).quantity == Decimal("0")

    @pytest.mark.parametrize("quantity", ["-1", "abc", None, True, "NaN", "Infinity"])
    def test_bad_quantity(self, quantity):
        with pytest.raises(InvalidQuantityError) as excinfo:
            validate_line(3, _line(quantity=quantity))
        assert excinfo.value.line_index == 3

    def test_negative_price(self):
        with pytest.raises(InvalidPriceError):
            validate_line(0, _line(price="-0.001"))

    @pytest.mark.parametrize("discount", ["-1", "100.01", "x"])
    def test_bad_discount(self, discount):
        with pytest.raises(InvalidDiscountError):
            validate_line(0, _line(discount=discount))

    def test_full_discount_allowed(self):
        assert validate_line(0, _line(discount="100")).discount_percent == Decimal("100")

    def test_missing_discount_is_zero(self):
        assert validate_line(0, _line(discount=None)).discount_percent == Decimal("0")

    def test_identity_fields_kept(self):
        line = validate_line(0, _line(product_id="P-1", description="Vis", fodec=True))
        assert (line.product_id, line.description, line.fodec) == ("P-1", "Vis", True)


class TestValidateLines:

    def test_empty_allowed_for_previews(self):
        assert validate_lines([]) == ()

    def test_empty_rejected_for_saves(self):
        with pytest.raises(EmptyDocumentError):
            validate_lines([], "facture", allow_empty=False)

    def test_stops_at_first_invalid_line(self):
        with pytest.raises(InvalidPriceError) as excinfo:
            validate_lines([_line(), _line(price="-1"), _line(quantity="-1")])
        assert excinfo.value.line_index == 1

    def test_same_line_id_twice_rejected(self):
        line_id = uuid4()
        with pytest.raises(DuplicateLineError) as excinfo:
            validate_lines([_line(line_id=line_id), _line(), _line(line_id=line_id)])
        assert excinfo.value.line_index == 2
        assert excinfo.value.line_id == str(line_id)

    def test_new_lines_without_id_may_repeat(self):
        assert len(validate_lines([_line(), _line()])) == 2

    def test_fodec_rate_coerced(self):
        (line,) = validate_lines([_line(fodec=True, fodec_rate="1.5")])
        assert line.fodec_rate == Decimal("1.5")

    def test_negative_fodec_rate_rejected(self):
        with pytest.raises(InvalidPriceError):
            validate_lines([_line(fodec=True, fodec_rate="-1")])
