"""
Unit tests for the money codec.

Verifies:
- Decimal and string inputs convert to integer minor units
- Floats go through str(), so 0.1 stays 0.1
- Half-up rounding at the third decimal
- Rejection of non-finite, negative, non-numeric and out-of-range input
- MoneyCodec binding a currency and its decimal places
"""

from decimal import Decimal

import pytest

from labour_ledger.db.types import MAX_MINOR_UNITS
from labour_ledger.domain.money import (
    MoneyCodec,
    format_minor_units,
    require_positive_minor_units,
    to_display,
    to_minor_units,
)
from labour_ledger.exceptions import InvalidAmountError


class TestToMinorUnits:
    def test_decimal_string(self):
        assert to_minor_units("230.00") == 23000

    def test_decimal(self):
        assert to_minor_units(Decimal("2.99")) == 299

    def test_int_is_display_units(self):
        assert to_minor_units(5) == 500

    def test_float_goes_through_str(self):
        assert to_minor_units(0.1) == 10
        assert to_minor_units(1.15) == 115

    def test_half_up(self):
        assert to_minor_units("230.005") == 23001
        assert to_minor_units("230.004") == 23000

    def test_negative_rejected_by_default(self):
        with pytest.raises(InvalidAmountError):
            to_minor_units("-1.00")

    def test_negative_allowed_rounds_away_from_zero(self):
        assert to_minor_units("-1.005", allow_negative=True) == -101

    def test_zero_decimal_places(self):
        assert to_minor_units("12.5", decimal_places=0) == 13

    @pytest.mark.parametrize("bad", ["NaN", "Infinity", "abc", "", True, None, [1]])
    def test_invalid_input(self, bad):
        with pytest.raises(InvalidAmountError):
            to_minor_units(bad)

    @pytest.mark.parametrize("huge", ["1e30", "1e999999", Decimal("9" * 40), 10**30])
    def test_too_large_rejected(self, huge):
        with pytest.raises(InvalidAmountError, match="too large"):
            to_minor_units(huge)

    def test_largest_storable_amount(self):
        assert to_minor_units("92233720368547758.07") == MAX_MINOR_UNITS
        with pytest.raises(InvalidAmountError):
            to_minor_units("92233720368547758.08")


class TestToDisplay:
    def test_two_places(self):
        assert to_display(23000) == Decimal("230.00")

    def test_negative(self):
        assert to_display(-5) == Decimal("-0.05")

    def test_rejects_non_int(self):
        with pytest.raises(InvalidAmountError):
            to_display(Decimal("1.5"))

    def test_format(self):
        assert format_minor_units(29900, "INR") == "INR 299.00"

    def test_out_of_range_rejected(self):
        with pytest.raises(InvalidAmountError):
            to_display(10**40)


class TestMoneyCodec:
    def test_uses_bound_currency(self):
        codec = MoneyCodec("JPY", 0)
        assert codec.to_minor_units("1500") == 1500
        assert codec.to_display(1500) == Decimal("1500")
        assert codec.format(1500) == "JPY 1500"

    def test_three_decimal_places(self):
        codec = MoneyCodec("KWD", 3)
        assert codec.to_minor_units("1.2345") == 1235
        assert codec.format(1235) == "KWD 1.235"


class TestRequirePositive:
    def test_accepts_positive_int(self):
        assert require_positive_minor_units(1) == 1

    @pytest.mark.parametrize("bad", [0, -1, 1.0, Decimal(1), True, "1", 2**63])
    def test_rejects(self, bad):
        with pytest.raises(InvalidAmountError):
            require_positive_minor_units(bad, "total_amount")
