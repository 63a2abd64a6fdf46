from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any, Iterable

from .dates import format_date, parse_date
from .field_values import extract_field_value
from .models import Job, ReportColumn, ReportSettings

REPORT_FIXED_HEADERS = ("File Name", "Status", "Processing Date")
REPORT_SHEET_TITLE = "Extraction Report"
REPORT_FILE_NAME = "extraction_report.xlsx"
_UNKNOWN_FILE_NAME = "Unknown"


def report_columns(
    jobs: Iterable[Job], settings: ReportSettings | None = None
) -> list[tuple[str, str]]:
    """
    Return ``(field_name, header)`` pairs for the field columns of the report.

    Only fields present in at least one job are listed. Fields named in the
    configured column order come first, in that order, and the rest follow
    alphabetically. Hidden columns are dropped and display names replace
    field names in the header.
    """
    present: set[str] = set()
    for job in jobs:
        if isinstance(job.extracted_fields, dict):
            present.update(job.extracted_fields.keys())
    configured = settings.column_order if settings else []
    ordered = [name for name in dict.fromkeys(configured) if name in present]
    ordered.extend(sorted(present.difference(ordered)))

    columns: list[tuple[str, str]] = []
    for name in ordered:
        column = _column(settings, name)
        if not column.visible:
            continue
        columns.append((name, column.display_name or name))
    return columns


def report_rows(
    jobs: Iterable[Job],
    columns: list[tuple[str, str]],
    settings: ReportSettings | None = None,
) -> list[list[str]]:
    rows: list[list[str]] = []
    for job in jobs:
        fields = job.extracted_fields if isinstance(job.extracted_fields, dict) else {}
        row = [
            job.new_filename or job.file_name or _UNKNOWN_FILE_NAME,
            job.state.value,
            job.created_at.isoformat(),
        ]
        for name, _ in columns:
            row.append(_cell_value(name, fields.get(name), _column(settings, name)))
        rows.append(row)
    return rows


def archive_member_name(name: str, used_names: set[str]) -> str:
    """
    Return ``name`` or the first ``_1``, ``_2``... variant not in ``used_names``.

    Example:
        >>> archive_member_name("a.pdf", {"a.pdf", "a_1.pdf"})
        'a_2.pdf'
    """
    if name not in used_names:
        return name
    path = PurePosixPath(name)
    counter = 1
    while True:
        candidate = f"{path.stem}_{counter}{path.suffix}"
        if candidate not in used_names:
            return candidate
        counter += 1


def _column(settings: ReportSettings | None, name: str) -> ReportColumn:
    if settings is None:
        return ReportColumn()
    return settings.columns.get(name) or ReportColumn()


def _cell_value(name: str, field: Any, column: ReportColumn) -> str:
    value = extract_field_value(field)
    if not value or not column.date_format or "date" not in name.lower():
        return value
    parsed = parse_date(value)
    if parsed is None:
        return value
    return format_date(parsed, column.date_format)
