from __future__ import annotations

import itertools
from pathlib import PurePosixPath
from urllib.parse import urlparse

from docflow.domain.errors import PermanentUpstreamError
from docflow.domain.models import OperationStatus, PollResult, SubmitResult
from docflow.ports.extraction_port import ExtractionPort


class MockExtractionAdapter(ExtractionPort):
    """
    Offline stand-in for the extraction service.

    Each submission becomes an operation that reports ``running`` for
    ``polls_until_done`` polls and then succeeds with fields derived from the
    document name. Documents whose URL contains a key of ``failures`` fail
    with the mapped message.
    """

    def __init__(
        self,
        polls_until_done: int = 1,
        synchronous: bool = False,
        failures: dict[str, str] | None = None,
        fields: dict | None = None,
    ) -> None:
        self._polls_until_done = polls_until_done
        self._synchronous = synchronous
        self._failures = failures or {}
        self._fields = fields
        self._counter = itertools.count(1)
        self._operations: dict[str, dict] = {}
        self.submitted: list[str] = []

    async def submit(self, document_url: str, model_id: str) -> SubmitResult:
        self.submitted.append(document_url)
        if self._synchronous:
            error = self._failure_for(document_url)
            if error:
                raise PermanentUpstreamError(error)
            return SubmitResult(fields=self._fields_for(document_url), confidence=1.0)
        operation_id = f"{model_id}/analyzeResults/mock-{next(self._counter)}"
        self._operations[operation_id] = {"url": document_url, "polls": 0}
        return SubmitResult(operation_id=operation_id)

    async def poll(self, operation_id: str) -> PollResult:
        operation = self._operations.get(operation_id)
        if operation is None:
            raise PermanentUpstreamError(f"404: Operation not found: {operation_id}")
        operation["polls"] += 1
        if operation["polls"] <= self._polls_until_done:
            return PollResult(status=OperationStatus.RUNNING)
        error = self._failure_for(operation["url"])
        if error:
            return PollResult(status=OperationStatus.FAILED, error=error)
        return PollResult(
            status=OperationStatus.SUCCEEDED, fields=self._fields_for(operation["url"])
        )

    def _failure_for(self, document_url: str) -> str | None:
        for needle, message in self._failures.items():
            if needle in document_url:
                return message
        return None

    def _fields_for(self, document_url: str) -> dict:
        if self._fields is not None:
            return dict(self._fields)
        stem = PurePosixPath(urlparse(document_url).path).stem
        return {
            "CustomerName": {"type": "string", "valueString": "Mock Customer"},
            "InvoiceId": {"type": "string", "valueString": stem},
            "InvoiceDate": {"type": "date", "valueDate": "2025-06-05", "content": "06/05/2025"},
        }
