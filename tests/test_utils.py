from datetime import datetime

import pytest

from core.errors import InvalidId, ValidationError
from core.utils import parse_date, parse_id


def test_parse_id_accepts_ints_and_digit_strings():
    assert parse_id(12) == 12
    assert parse_id("12") == 12
    assert parse_id(" 7 ") == 7


@pytest.mark.parametrize("value", ["abc", "", None, True, 1.5, "-3"])
def test_parse_id_rejects_everything_else(value):
    with pytest.raises(InvalidId) as exc:
        parse_id(value, "order_id")
    assert exc.value.code == "INVALID_ID"
    assert exc.value.field == "order_id"


def test_parse_date():
    assert parse_date("2024-01-02T10:00:00") == datetime(2024, 1, 2, 10, 0)
    assert parse_date(None) is None
    with pytest.raises(ValidationError) as exc:
        parse_date("yesterday", "date_from")
    assert exc.value.code == "INVALID_DATE"
