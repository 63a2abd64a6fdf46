from datetime import date

import pytest

from docflow.domain.dates import format_date, normalize_date, parse_date

TODAY = date(2025, 1, 2)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2025-06-05", "2025-06-05"),
        ("2025/6/5", "2025-06-05"),
        ("2025.06.05", "2025-06-05"),
        ("2025-06-05T10:30:00Z", "2025-06-05"),
        ("20250605", "2025-06-05"),
        ("06/05/2025", "2025-06-05"),
        ("25/12/2024", "2024-12-25"),
        ("6-5-25", "2025-06-05"),
        ("June 5, 2025", "2025-06-05"),
        ("5 Jun 2025", "2025-06-05"),
        ("05-Jun-2025", "2025-06-05"),
        ("6525", "2025-06-05"),
        ("060525", "2025-06-05"),
        ("41525", "2025-04-15"),
        ("125", "2025-01-01"),
        ("45813", "2025-06-05"),
        (45813, "2025-06-05"),
        ("Issued on 2025 day 6 month 5", "2025-06-05"),
    ],
)
def test_normalize_date_formats(value, expected) -> None:
    assert normalize_date(value, today=TODAY) == expected


def test_normalize_date_accepts_date_objects() -> None:
    assert normalize_date(date(2024, 2, 29), today=TODAY) == "2024-02-29"


@pytest.mark.parametrize("value", [None, "", "not a date", "13/45/2025", True])
def test_normalize_date_falls_back_to_today(value) -> None:
    assert normalize_date(value, today=TODAY) == "2025-01-02"


def test_parse_date_rejects_years_outside_range() -> None:
    assert parse_date("1850-01-01") is None
    assert parse_date("2150-01-01") is None


def test_parse_date_unix_epoch_seconds_and_millis() -> None:
    assert parse_date("1749081600") == date(2025, 6, 5)
    assert parse_date("1749081600000") == date(2025, 6, 5)


def test_format_date_tokens() -> None:
    value = date(2025, 6, 5)
    assert format_date(value, "YYYY-MM-DD") == "2025-06-05"
    assert format_date(value, "MMM-DD-YYYY") == "Jun-05-2025"
    assert format_date(value, "DD MMMM yy") == "05 June 25"
    assert format_date(value, "yyyyMMdd") == "20250605"
