from __future__ import annotations

from typing import Protocol


class PdfSplitterPort(Protocol):
    def split(self, data: bytes) -> list[bytes]:
        """Split a PDF into single-page PDFs, in page order."""

    def count_pages(self, data: bytes) -> int:
        """Return the number of pages in a PDF."""
