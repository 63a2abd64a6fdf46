from __future__ import annotations

from io import BytesIO
from typing import Sequence

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils import get_column_letter

MAX_COLUMN_WIDTH = 50
MAX_SHEET_TITLE_LENGTH = 31


class OpenpyxlReportWriter:
    """Writes report rows as an ``.xlsx`` workbook with auto-sized columns."""

    def render(
        self, title: str, headers: Sequence[str], rows: Sequence[Sequence[str]]
    ) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = title[:MAX_SHEET_TITLE_LENGTH]
        widths = [len(str(header)) for header in headers]
        for row_index, values in enumerate([list(headers), *rows], start=1):
            for column_index, value in enumerate(values, start=1):
                text = ILLEGAL_CHARACTERS_RE.sub("", str(value if value is not None else ""))
                cell = sheet.cell(row=row_index, column=column_index, value=text)
                if text.startswith("="):
                    cell.data_type = "s"
                if column_index <= len(widths):
                    widths[column_index - 1] = max(widths[column_index - 1], len(text))
        for column_index, width in enumerate(widths, start=1):
            sheet.column_dimensions[get_column_letter(column_index)].width = min(
                width + 2, MAX_COLUMN_WIDTH
            )
        buffer = BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()
