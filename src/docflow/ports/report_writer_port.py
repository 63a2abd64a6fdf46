from __future__ import annotations

from typing import Protocol, Sequence


class ReportWriterPort(Protocol):
    def render(
        self, title: str, headers: Sequence[str], rows: Sequence[Sequence[str]]
    ) -> bytes:
        """Return a spreadsheet document with one titled sheet: a header row, then rows."""
