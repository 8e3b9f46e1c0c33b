"""Multi-format date parsing for service-request exports.

Exports mix ISO timestamps with US-style ``MM/DD/YYYY`` values, with or
without a 12-hour clock. :func:`parse_date` tries each known form in a fixed
order and returns a naive local ``datetime`` or ``None``; it never raises.
"""

from __future__ import annotations

import re
import warnings
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import pandas as pd

US_DATETIME_12H = re.compile(
    r"^(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{2}):(\d{2})\s+(AM|PM)$", re.IGNORECASE
)
US_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
US_DASH_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}")

# Inputs shaped like one of these were already judged by a strict rule; the
# generic fallback must not reinterpret them (e.g. swap month 13 into a day).
_STRUCTURED_SHAPES = (US_DATETIME_12H, US_SLASH_DATE, US_DASH_DATE, ISO_DATE_PREFIX)


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _parse_iso(text: str) -> Optional[datetime]:
    return _to_local_naive(datetime.fromisoformat(text))


def _parse_us_datetime_12h(text: str) -> Optional[datetime]:
    match = US_DATETIME_12H.match(text)
    if not match:
        return None
    month, day, year, hour, minute, second, meridiem = match.groups()
    hour_i = int(hour)
    meridiem = meridiem.upper()
    if meridiem == "PM" and hour_i < 12:
        hour_i += 12
    elif meridiem == "AM" and hour_i == 12:
        hour_i = 0
    return datetime(int(year), int(month), int(day), hour_i, int(minute), int(second))


def _date_only(pattern: re.Pattern) -> Callable[[str], Optional[datetime]]:
    def _parse(text: str) -> Optional[datetime]:
        match = pattern.match(text)
        if not match:
            return None
        month, day, year = match.groups()
        return datetime(int(year), int(month), int(day))

    return _parse


def _parse_generic(text: str) -> Optional[datetime]:
    if any(shape.match(text) for shape in _STRUCTURED_SHAPES):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        parsed = pd.to_datetime(text, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return None
    return _to_local_naive(parsed.to_pydatetime())


DATE_RULES: List[Callable[[str], Optional[datetime]]] = [
    _parse_iso,
    _parse_us_datetime_12h,
    _date_only(US_SLASH_DATE),
    _date_only(US_DASH_DATE),
    _parse_generic,
]


def parse_date(value: object) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    for rule in DATE_RULES:
        try:
            parsed = rule(text)
        except Exception:
            # A failing rule declines; the next one gets a turn.
            continue
        if parsed is not None:
            return parsed
    return None


def whole_days_between(start: datetime, end: datetime) -> int:
    """Whole days from ``start`` to ``end``, truncated toward zero."""
    delta = end - start
    days = abs(delta) // timedelta(days=1)
    return days if delta >= timedelta(0) else -days
