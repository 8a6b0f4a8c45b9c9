from datetime import date, datetime

import pytest

from digistock.time_utils import add_months, parse_iso_datetime, to_utc_z


def test_add_months_clamps_to_end_of_february():
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)


def test_add_months_uses_leap_day():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)


def test_add_months_rolls_over_year():
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)
    assert add_months(date(2025, 12, 15), 1) == date(2026, 1, 15)


def test_add_months_keeps_time_of_day():
    start = datetime(2025, 3, 31, 14, 30)
    assert add_months(start, 1) == datetime(2025, 4, 30, 14, 30)


def test_add_months_twelve_is_one_year():
    assert add_months(date(2025, 6, 10), 12) == date(2026, 6, 10)


def test_add_months_rejects_non_integer():
    with pytest.raises(TypeError):
        add_months(date(2025, 1, 1), 1.5)
    with pytest.raises(TypeError):
        add_months(date(2025, 1, 1), True)


def test_parse_iso_datetime_normalizes_to_naive_utc():
    assert parse_iso_datetime("2025-01-31T10:00:00Z") == datetime(2025, 1, 31, 10, 0)
    assert parse_iso_datetime("2025-01-31T12:00:00+02:00") == datetime(2025, 1, 31, 10, 0)
    assert parse_iso_datetime("") is None


def test_to_utc_z():
    assert to_utc_z(datetime(2025, 1, 31, 10, 0, 0, 123)) == "2025-01-31T10:00:00Z"
    assert to_utc_z(None) is None
