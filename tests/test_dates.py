from datetime import date, datetime

from app.utils.dates import (
    filter_dates_within_months,
    is_within_months,
    normalize_preferred_date,
    parse_preferred_date,
    sort_preferred_dates,
)


def test_normalize_preferred_date():
    assert normalize_preferred_date("1월 1일(금)") == "1월1일(금)"
    assert normalize_preferred_date("12월27일 (토)") == "12월27일 (토)"
    assert normalize_preferred_date("") == ""
    assert normalize_preferred_date(None) is None


def test_parse_preferred_date_year_rollover():
    assert parse_preferred_date("1월 3일", date(2025, 11, 20)) == datetime(2026, 1, 3)
    assert parse_preferred_date("12월 27일", date(2026, 2, 1)) == datetime(2025, 12, 27)
    assert parse_preferred_date("5월 5일", date(2025, 4, 24)) == datetime(2025, 5, 5)


def test_parse_preferred_date_invalid():
    assert parse_preferred_date("2월 30일", date(2025, 1, 10)) is None
    assert parse_preferred_date("13월 1일", date(2025, 1, 10)) is None
    assert parse_preferred_date("아무때나", date(2025, 1, 10)) is None
    assert parse_preferred_date("   ") is None


def test_within_months():
    base = date(2025, 4, 24)
    assert is_within_months("6월 1일", 3, base)
    assert not is_within_months("9월 1일", 3, base)
    assert filter_dates_within_months(["5월 1일", "10월 1일", "미정"], 3, base) == ["5월 1일"]


def test_sort_preferred_dates_across_year_end():
    base = date(2025, 12, 1)
    assert sort_preferred_dates(["1월 10일", "미정", "12월 20일"], base) == ["12월 20일", "1월 10일", "미정"]
