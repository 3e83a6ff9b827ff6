from __future__ import annotations

import numbers
import re
from datetime import UTC, date, datetime, timedelta
from typing import Any

import pandas as pd
from dateutil import parser as date_parser

"""Date normalization for uploaded order rows.

Spreadsheet exports carry dates as serial numbers, as real date cells, as
already formatted ``dd/mm/yyyy`` text or as free text such as
``12th December 2024``. normalize_date folds all of them into ``dd/mm/yyyy``.

Anything that cannot be read as a calendar date comes back unchanged as text;
callers rely on always receiving a string, so this module never raises.
"""

__all__ = [
    "DISPLAY_FORMAT",
    "SERIAL_UNIX_EPOCH",
    "normalize_date",
    "serial_to_datetime",
    "parse_display_date",
]

DISPLAY_FORMAT = "%d/%m/%Y"

# 1899-12-30 起点のシリアル値で 1970-01-01 に当たる日
SERIAL_UNIX_EPOCH = 25569
_MS_PER_DAY = 86400 * 1000
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

_DISPLAY_RE = re.compile(r"\d{2}/\d{2}/\d{4}")
_ISO_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_ORDINAL_RE = re.compile(r"(\d+)(st|nd|rd|th)")
# 年/月/日がすべて異なる既定値 (欠けた要素の検出用)
_DETECT_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, bool):
        return not value
    if isinstance(value, numbers.Real) and not isinstance(value, bool) and value == 0:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def serial_to_datetime(serial: float) -> datetime:
    """Convert a spreadsheet serial day count to a UTC datetime.

    The 1900 leap-year defect of the spreadsheet date system is not
    corrected; serials before 1900-03-01 come out one day off.
    """
    offset_ms = round((serial - SERIAL_UNIX_EPOCH) * _MS_PER_DAY)
    return _UNIX_EPOCH + timedelta(milliseconds=offset_ms)


def _parse_text(text: str) -> datetime | None:
    """Parse free text; None unless the text itself names a month and a year.

    Parsing against two different defaults shows which parts dateutil
    filled in: a weekday ("Mon") or a bare number ("1st", "12.5") would
    otherwise become a date in the default year.
    """
    cleaned = _ORDINAL_RE.sub(r"\1", text, count=1)
    if not cleaned.strip():
        return None
    try:
        first = date_parser.parse(cleaned, default=_DETECT_DEFAULTS[0])
        second = date_parser.parse(cleaned, default=_DETECT_DEFAULTS[1])
    except (ValueError, OverflowError):
        return None
    if (first.year, first.month) != (second.year, second.month):
        return None
    # 日の指定がなければ 1 日
    return first


def normalize_date(value: Any) -> str:
    """Return ``value`` as ``dd/mm/yyyy``, or its text unchanged when unparseable.

    - empty / missing → ``""``
    - ``dd/mm/yyyy`` text → unchanged (no day/month validation)
    - numbers → spreadsheet serial days (25569 == 1970-01-01)
    - date/datetime cells → formatted directly
    - other text → first ordinal suffix stripped (``12th`` → ``12``), then parsed;
      text without both a month and a year comes back unchanged
    """
    if _is_empty(value):
        return ""

    if isinstance(value, str) and _DISPLAY_RE.fullmatch(value):
        return value

    parsed: date | None
    if isinstance(value, (datetime, date)):
        parsed = value
    elif isinstance(value, numbers.Real) and not isinstance(value, bool):
        try:
            parsed = serial_to_datetime(float(value))
        except (OverflowError, ValueError):
            parsed = None
    else:
        parsed = _parse_text(str(value))

    if parsed is None:
        return str(value)
    return f"{parsed.day:02d}/{parsed.month:02d}/{parsed.year:04d}"


def parse_display_date(value: Any) -> date | None:
    """Read a stored date value back into a ``date``.

    Accepts ``dd/mm/yyyy`` (as written by normalize_date), ISO ``yyyy-mm-dd``
    (as entered for delivery dates) and anything normalize_date understands.
    Returns None for empty or unparseable input.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if _is_empty(value):
        return None
    text = str(value).strip()
    if _ISO_RE.fullmatch(text):
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    display = text if _DISPLAY_RE.fullmatch(text) else normalize_date(value)
    try:
        return datetime.strptime(display, DISPLAY_FORMAT).date()
    except ValueError:
        return None
