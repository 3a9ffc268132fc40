from decimal import Decimal

import pytest

from trailwander.helpers import (
    coerce_number,
    is_number,
    parse_id_list,
    parse_json_object,
    parse_positive_int,
    split_csv_ids,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (3, 3),
        (2.5, 2.5),
        (4.0, 4),
        ("10", 10),
        (" 2.75 ", 2.75),
        (Decimal("1.50"), 1.5),
        ("abc", None),
        ("", None),
        (True, None),
        (None, None),
        (float("nan"), None),
    ],
)
def test_coerce_number(raw, expected):
    assert coerce_number(raw) == expected


def test_is_number_excludes_bool():
    assert is_number(3)
    assert is_number(Decimal("2"))
    assert not is_number(True)
    assert not is_number("3")


def test_parse_positive_int():
    assert parse_positive_int(None, "page", 1) == 1
    assert parse_positive_int("", "page", 1) == 1
    assert parse_positive_int("3", "page", 1) == 3
    with pytest.raises(ValueError, match="page"):
        parse_positive_int("0", "page", 1)
    with pytest.raises(ValueError, match="limit"):
        parse_positive_int("2.5", "limit", 10)
    with pytest.raises(ValueError):
        parse_positive_int("many", "limit", 10)


def test_parse_id_list():
    assert parse_id_list(["1", 2, " 3 "]) == [1, 2, 3]
    with pytest.raises(ValueError):
        parse_id_list(["1", "two"])


def test_split_csv_ids():
    assert split_csv_ids("1, 2,,3") == ["1", "2", "3"]
    assert split_csv_ids("") == []


def test_parse_json_object():
    assert parse_json_object(None) is None
    assert parse_json_object("  ") is None
    assert parse_json_object('{"city": "Huntsville"}') == {"city": "Huntsville"}
    with pytest.raises(ValueError, match="valid JSON"):
        parse_json_object("{city:")
    with pytest.raises(ValueError, match="object"):
        parse_json_object("[1, 2]")


def test_integer_strings_keep_full_precision():
    assert coerce_number("123456789012345678") == 123456789012345678
    assert parse_positive_int("123456789012345678", "page", 1) == 123456789012345678


@pytest.mark.parametrize("raw", ["1e3", "12345678901234567891", "3.0", "+", "١٢"])
def test_parse_positive_int_wants_plain_digits(raw):
    with pytest.raises(ValueError, match="page"):
        parse_positive_int(raw, "page", 1)


def test_parse_positive_int_maximum():
    assert parse_positive_int("50", "page", 1, maximum=50) == 50
    with pytest.raises(ValueError, match="at most 50"):
        parse_positive_int("51", "page", 1, maximum=50)
