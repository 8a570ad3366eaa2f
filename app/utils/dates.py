"""Helpers for the free-text "preferred participation date" option.

Buyers type dates such as ``"12월 27일 (토)"``. The helpers normalize the
spacing and resolve the month/day against a base date, treating the turn of
the year specially: late in the year an early-year date means next year, and
early in the year a late-year date means last year.
"""

import calendar
import re
from datetime import date, datetime
from typing import Iterable, List, Optional

MONTH_DAY_PATTERN = re.compile(r"(\d+)월\s*(\d+)일")
MONTH_DAY_SPACED_PATTERN = re.compile(r"(\d+)월\s+(\d+)일")


def normalize_preferred_date(preferred_date: Optional[str]) -> Optional[str]:
    """``"1월 1일(금)"`` -> ``"1월1일(금)"``. Blank input is returned unchanged."""
    if not preferred_date or not preferred_date.strip():
        return preferred_date
    return MONTH_DAY_SPACED_PATTERN.sub(lambda m: f"{m.group(1)}월{m.group(2)}일", preferred_date)


def _resolve_year(base: date, month: int) -> int:
    if base.month >= 10 and month <= 3:
        return base.year + 1
    if base.month <= 3 and month >= 10:
        return base.year - 1
    return base.year


def parse_preferred_date(preferred_date: Optional[str], base_date: Optional[date] = None) -> Optional[datetime]:
    """Resolve a month/day string to midnight of the nearest matching date.

    Returns None when no month/day is present or the date does not exist.
    """
    if not preferred_date or not preferred_date.strip():
        return None

    match = MONTH_DAY_PATTERN.search(preferred_date)
    if not match:
        return None

    month, day = int(match.group(1)), int(match.group(2))
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None

    base = base_date or date.today()
    try:
        return datetime(_resolve_year(base, month), month, day)
    except ValueError:
        # e.g. 2월30일
        return None


def _shift_months(d: date, months: int) -> date:
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


def is_within_months(preferred_date: Optional[str], months: int = 3, base_date: Optional[date] = None) -> bool:
    base = base_date or date.today()
    parsed = parse_preferred_date(preferred_date, base)
    if parsed is None:
        return False
    target = parsed.date()
    return _shift_months(base, -months) <= target <= _shift_months(base, months)


def filter_dates_within_months(dates: Iterable[str], months: int = 3, base_date: Optional[date] = None) -> List[str]:
    return [d for d in dates if is_within_months(d, months, base_date)]


def sort_preferred_dates(dates: Iterable[str], base_date: Optional[date] = None) -> List[str]:
    """Sort ascending by resolved date; strings without a month/day go last."""
    base = base_date or date.today()

    def sort_key(value: str):
        match = MONTH_DAY_PATTERN.search(value)
        if not match:
            return (1, 0, 0, value)
        month, day = int(match.group(1)), int(match.group(2))
        if base.month >= 10 and month <= 3:
            month += 12
        elif base.month <= 3 and month >= 10:
            month -= 12
        return (0, month, day, value)

    return sorted(dates, key=sort_key)
