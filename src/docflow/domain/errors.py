"""Error types shared by the pipeline services and adapters."""

from __future__ import annotations


class DocflowError(Exception):
    """Base exception for docflow."""


class RetryableError(DocflowError):
    """Error that can be retried with backoff."""


class PermanentError(DocflowError):
    """Error that should not be retried."""


class TransientUpstreamError(RetryableError):
    """Extraction service is throttling (429) or temporarily unavailable."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class PermanentUpstreamError(PermanentError):
    """Extraction service rejected the request (bad model, malformed document)."""


class ArtifactNotFoundError(PermanentError):
    """Object missing from the object store."""


class SessionNotFoundError(PermanentError):
    pass


class JobNotFoundError(PermanentError):
    pass


class InsufficientBalanceError(PermanentError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Insufficient balance: required {required}, available {available}")
        self.required = required
        self.available = available


class StorageError(DocflowError):
    """Record store or object store operation failed."""


class SafetyViolationError(DocflowError):
    """Deletion scope is not provably confined to a single session."""


class DocumentReadError(PermanentError):
    """Uploaded document could not be read as a PDF."""


class OwnerNotFoundError(PermanentError):
    pass


class NothingToExportError(PermanentError):
    """Session has no completed page jobs to put in an export."""
