from datetime import time
from decimal import Decimal

import pytest

from clientepro.shared.validators import parse_amount, parse_time_of_day, validate_time_of_day


def test_parse_time_of_day():
    assert parse_time_of_day("09:30") == time(9, 30)
    assert parse_time_of_day("9:05:10") == time(9, 5, 10)
    assert parse_time_of_day(time(8, 0)) == time(8, 0)


@pytest.mark.parametrize("value", ["", "24:00", "12:60", "noon", None])
def test_parse_time_of_day_rejects_invalid(value):
    with pytest.raises(ValueError):
        parse_time_of_day(value)


def test_validate_time_of_day_normalizes():
    assert validate_time_of_day("9:30") == "09:30"
    assert validate_time_of_day(None) is None


def test_parse_amount():
    assert parse_amount("150.50") == Decimal("150.50")
    assert parse_amount(80) == Decimal("80")
    assert parse_amount(0.1) == Decimal("0.1")


@pytest.mark.parametrize("value", [None, "", "abc", float("nan"), float("inf"), True, "Infinity"])
def test_parse_amount_rejects_non_numbers(value):
    assert parse_amount(value) is None
