"""
Tests for reusable wizard step validators.
"""
import pytest

from fleetdesk.core.exceptions import ValidationException
from fleetdesk.flows import validators


class TestPositiveNumber:
    @pytest.mark.parametrize("text,expected", [
        ("25,000", 25000.0),
        ("₦ 1 500", 1500.0),
        ("150k", 150000.0),
        ("1.5m", 1500000.0),
        ("0.5", 0.5),
    ])
    def test_accepted(self, text, expected):
        assert validators.positive_number("Rate")(text) == expected

    @pytest.mark.parametrize("text", ["inf", "-inf", "Infinity", "nan", "NaN", "1e999", "1e999k", "abc", ""])
    def test_not_a_number(self, text):
        with pytest.raises(ValidationException) as exc_info:
            validators.positive_number("Quantity")(text)
        assert exc_info.value.detail == "Quantity must be a number"

    def test_zero_and_negative(self):
        with pytest.raises(ValidationException):
            validators.positive_number("Rate")("0")
        with pytest.raises(ValidationException):
            validators.positive_number("Rate")("-5")

    def test_zero_allowed_when_requested(self):
        assert validators.positive_number("Odometer", allow_zero=True)("0") == 0.0


class TestPhone:
    def test_canonical(self):
        assert validators.phone("0803 111 2222") == "+2348031112222"

    @pytest.mark.parametrize("text", ["unknown", "0803", "+442079460958"])
    def test_rejected(self, text):
        with pytest.raises(ValidationException):
            validators.phone(text)
