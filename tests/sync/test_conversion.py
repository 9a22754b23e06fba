from datetime import date

import pytest

from graphsync.shared.config import NodePropertyType as T
from graphsync.sync.conversion import calculate_batch_size, convert_value


@pytest.mark.parametrize("raw,expected", [("TRUE", True), (" false ", False), (True, True)])
def test_boolean_accepts_case_insensitive_strings(raw, expected):
    assert convert_value(raw, T.BOOLEAN) is expected


@pytest.mark.parametrize("raw", ["yes", 1, ["true"]])
def test_boolean_rejects_other_values(raw):
    assert convert_value(raw, T.BOOLEAN) is None


def test_integer_floors_and_drops_non_numeric():
    assert convert_value("42", T.INTEGER) == 42
    assert convert_value(3.9, T.INTEGER) == 3
    assert convert_value("-2.5", T.INTEGER) == -3
    assert convert_value("abc", T.INTEGER) is None
    assert convert_value(True, T.INTEGER) is None


def test_float_parses_strings():
    assert convert_value("2.5", T.FLOAT) == 2.5
    assert convert_value(7, T.FLOAT) == 7.0
    assert convert_value("nan", T.FLOAT) is None


def test_dates_become_iso_strings():
    assert convert_value(date(2024, 3, 1), T.DATE) == "2024-03-01"
    assert convert_value("2024-03-01T10:30:00Z", T.DATE) == "2024-03-01"
    assert convert_value("2024-03-01T10:30:00Z", T.DATETIME) == "2024-03-01T10:30:00+00:00"
    assert convert_value("not a date", T.DATETIME) is None


def test_string_and_list_string():
    assert convert_value(123, T.STRING) == "123"
    assert convert_value(["a", 1], T.STRING) == "a, 1"
    assert convert_value("solo", T.LIST_STRING) == ["solo"]
    assert convert_value([1, "b"], T.LIST_STRING) == ["1", "b"]


def test_none_is_never_converted():
    assert convert_value(None, T.STRING) is None


@pytest.mark.parametrize(
    "total,expected", [(0, 50), (100, 50), (101, 100), (1000, 100), (5000, 250), (5001, 500)]
)
def test_batch_size_scales_with_collection(total, expected):
    assert calculate_batch_size(total) == expected


def test_batch_size_override_wins():
    assert calculate_batch_size(10_000, override=7) == 7
