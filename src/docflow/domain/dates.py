"""
Layered date normalization for extracted field values.

Each parser takes the cleaned input string and returns a ``date`` or ``None``.
Parsers run in order and the first plausible calendar date wins. Values no
parser understands fall back to today's date so a renamed artifact can still
be produced.

Compressed numeric strings are ambiguous ("010203" could be Jan-02-2003 or
01-Feb-2003); ties are resolved purely by the order the interpretations are
tried below, which is a fixed policy rather than a guarantee of correctness.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Callable

CANONICAL_FORMAT = "%Y-%m-%d"
MIN_YEAR = 1900
MAX_YEAR = 2099

EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_MIN = 40000
EXCEL_SERIAL_MAX = 50000

MONTH_NAMES = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

_ISO_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?:[T\s].*)?$")
_BASIC_ISO_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_NUMERIC_RE = re.compile(r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})\b")
_MONTH_FIRST_RE = re.compile(r"([A-Za-z]{3,})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})")
_DAY_FIRST_RE = re.compile(r"(\d{1,2})(?:st|nd|rd|th)?[\s\-]+([A-Za-z]{3,})\.?,?[\s\-]+(\d{4})")
_DIGITS_RE = re.compile(r"^(\d+)(?:\.\d+)?$")

DateParser = Callable[[str], "date | None"]


def normalize_date(value: object, today: date | None = None) -> str:
    """
    Return ``value`` as ``YYYY-MM-DD``, or today's date when it cannot be parsed.

    Examples:
        >>> normalize_date("06/05/2025")
        '2025-06-05'
        >>> normalize_date("6525")
        '2025-06-05'
        >>> normalize_date(45813)
        '2025-06-05'
    """
    parsed = parse_date(value)
    if parsed is None:
        parsed = today or datetime.now(timezone.utc).date()
    return parsed.strftime(CANONICAL_FORMAT)


def parse_date(value: object) -> date | None:
    """Run the parser chain and return the first plausible date, if any."""

    text = _clean(value)
    if not text:
        return None
    for parser in PARSERS:
        parsed = parser(text)
        if parsed is not None and _is_plausible(parsed):
            return parsed
    return None


def format_date(value: date, pattern: str) -> str:
    """
    Format a date with filename-friendly tokens.

    Supported tokens: ``YYYY``, ``YY``, ``MMMM`` (January), ``MMM`` (Jan),
    ``MM`` and ``DD``. The lowercase ``yyyy``/``yy``/``dd`` spellings are
    accepted as aliases.

    Example:
        >>> format_date(date(2025, 6, 5), "MMM-DD-YYYY")
        'Jun-05-2025'
    """
    month_name = MONTH_NAMES[value.month - 1].capitalize()
    replacements = {
        "YYYY": f"{value.year:04d}",
        "yyyy": f"{value.year:04d}",
        "YY": f"{value.year % 100:02d}",
        "yy": f"{value.year % 100:02d}",
        "MMMM": month_name,
        "MMM": month_name[:3],
        "MM": f"{value.month:02d}",
        "DD": f"{value.day:02d}",
        "dd": f"{value.day:02d}",
    }
    return re.sub(
        r"YYYY|yyyy|YY|yy|MMMM|MMM|MM|DD|dd",
        lambda match: replacements[match.group(0)],
        pattern,
    )


def parse_iso_like(text: str) -> date | None:
    match = _ISO_RE.match(text)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    match = _BASIC_ISO_RE.match(text)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    return None


def parse_numeric_locale(text: str) -> date | None:
    """MM/DD/YYYY first; DD/MM/YYYY only when the first part cannot be a month."""

    match = _NUMERIC_RE.search(text)
    if not match:
        return None
    first, second = int(match.group(1)), int(match.group(2))
    year = _expand_year(match.group(3))
    us_date = _safe_date(year, first, second)
    if us_date is not None:
        return us_date
    return _safe_date(year, second, first)


def parse_month_name(text: str) -> date | None:
    match = _MONTH_FIRST_RE.search(text)
    if match:
        month = _month_from_name(match.group(1))
        if month is not None:
            return _safe_date(int(match.group(3)), month, int(match.group(2)))
    match = _DAY_FIRST_RE.search(text)
    if match:
        month = _month_from_name(match.group(2))
        if month is not None:
            return _safe_date(int(match.group(3)), month, int(match.group(1)))
    return None


def parse_compressed(text: str) -> date | None:
    """
    Decode 3-6 digit strings written without separators, two-digit years in 2000-2099.

    3 digits: MYY (day 1). 4 digits: MMYY (day 1) when the first two digits
    form a month, else MDYY. 5 digits: MMDYY when the first two digits form a
    month, else MDDYY. 6 digits: MMDDYY.
    """
    match = _DIGITS_RE.match(text)
    if not match or "." in text:
        return None
    digits = match.group(1)
    if len(digits) == 3:
        return _safe_date(2000 + int(digits[1:]), int(digits[0]), 1)
    if len(digits) == 4:
        first_two = int(digits[:2])
        if 1 <= first_two <= 12:
            return _safe_date(2000 + int(digits[2:]), first_two, 1)
        return _safe_date(2000 + int(digits[2:]), int(digits[0]), int(digits[1]))
    if len(digits) == 5:
        first_two = int(digits[:2])
        if 1 <= first_two <= 12:
            return _safe_date(2000 + int(digits[3:]), first_two, int(digits[2]))
        return _safe_date(2000 + int(digits[3:]), int(digits[0]), int(digits[1:3]))
    if len(digits) == 6:
        return _safe_date(2000 + int(digits[4:]), int(digits[:2]), int(digits[2:4]))
    return None


def parse_excel_serial(text: str) -> date | None:
    match = _DIGITS_RE.match(text)
    if not match:
        return None
    serial = int(match.group(1))
    if not EXCEL_SERIAL_MIN < serial < EXCEL_SERIAL_MAX:
        return None
    return EXCEL_EPOCH + timedelta(days=serial)


def parse_unix_epoch(text: str) -> date | None:
    match = _DIGITS_RE.match(text)
    if not match:
        return None
    number = int(match.group(1))
    if 1_000_000_000 < number < 2_000_000_000:
        seconds = float(number)
    elif 1_000_000_000_000 < number < 2_000_000_000_000:
        seconds = number / 1000
    else:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).date()


def parse_loose_numbers(text: str) -> date | None:
    """Last resort: any three numbers where one is a 4-digit year, month before day."""

    numbers = re.findall(r"\d+", text)
    if len(numbers) < 3:
        return None
    year_index = next(
        (
            index
            for index, number in enumerate(numbers)
            if len(number) == 4 and MIN_YEAR <= int(number) <= MAX_YEAR
        ),
        None,
    )
    if year_index is None:
        return None
    others = [number for index, number in enumerate(numbers) if index != year_index]
    return _safe_date(int(numbers[year_index]), int(others[0]), int(others[1]))


PARSERS: tuple[DateParser, ...] = (
    parse_iso_like,
    parse_numeric_locale,
    parse_month_name,
    parse_compressed,
    parse_excel_serial,
    parse_unix_epoch,
    parse_loose_numbers,
)


def _clean(value: object) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime(CANONICAL_FORMAT)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().strip("\"'").strip()


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _expand_year(raw: str) -> int:
    year = int(raw)
    return 2000 + year if len(raw) == 2 else year


def _month_from_name(name: str) -> int | None:
    lowered = name.lower()
    for index, month_name in enumerate(MONTH_NAMES):
        if month_name.startswith(lowered) or lowered.startswith(month_name[:3]):
            return index + 1
    return None


def _is_plausible(value: date) -> bool:
    return MIN_YEAR <= value.year <= MAX_YEAR
