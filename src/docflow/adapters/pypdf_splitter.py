from __future__ import annotations

import io

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

from docflow.domain.errors import DocumentReadError
from docflow.ports.pdf_splitter_port import PdfSplitterPort


class PypdfSplitter(PdfSplitterPort):
    def split(self, data: bytes) -> list[bytes]:
        reader = self._reader(data)
        pages: list[bytes] = []
        for page in reader.pages:
            writer = PdfWriter()
            writer.add_page(page)
            buffer = io.BytesIO()
            writer.write(buffer)
            pages.append(buffer.getvalue())
        return pages

    def count_pages(self, data: bytes) -> int:
        return len(self._reader(data).pages)

    @staticmethod
    def _reader(data: bytes) -> PdfReader:
        try:
            return PdfReader(io.BytesIO(data))
        except (PdfReadError, ValueError) as exc:
            raise DocumentReadError(f"Failed to read PDF: {exc}") from exc
