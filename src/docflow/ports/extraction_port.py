from __future__ import annotations

from typing import Protocol, runtime_checkable

from docflow.domain.models import PollResult, SubmitResult


@runtime_checkable
class ExtractionPort(Protocol):
    async def submit(self, document_url: str, model_id: str) -> SubmitResult:
        """Submit one document; returns an operation id or the extracted fields."""

    async def poll(self, operation_id: str) -> PollResult:
        """Return the current status of a long-running extraction."""
