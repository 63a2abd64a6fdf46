from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SessionState(str, Enum):
    UPLOADING = "UPLOADING"
    PROCESSING = "PROCESSING"
    POST_PROCESSING = "POST_PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


class JobState(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    POLLING = "POLLING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


class OperationStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_JOB_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.EXPIRED})
NON_TERMINAL_JOB_STATES = frozenset(
    {JobState.QUEUED, JobState.PROCESSING, JobState.POLLING}
)


@dataclass
class Session:
    session_id: str
    owner_id: str
    state: SessionState
    storage_prefix: str
    model_id: str
    created_at: datetime
    expires_at: datetime
    total_files: int = 0
    total_pages: int = 0
    processed_pages: int = 0
    post_processed_count: int = 0


@dataclass
class Job:
    job_id: str
    session_id: str
    state: JobState
    file_name: str
    source_ref: str
    created_at: datetime
    parent_job_id: str | None = None
    page_number: int | None = None
    extracted_fields: dict | None = None
    renamed_ref: str | None = None
    new_filename: str | None = None
    operation_id: str | None = None
    polling_started_at: datetime | None = None
    last_polled_at: datetime | None = None
    error: str | None = None
    completed_at: datetime | None = None

    @property
    def is_extractable(self) -> bool:
        """Only page-level child jobs are sent to the extraction service."""

        return self.parent_job_id is not None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_JOB_STATES


@dataclass
class Operation:
    operation_id: str
    job_id: str
    status: OperationStatus
    retry_after: float | None = None
    fields: dict | None = None
    error: str | None = None


@dataclass
class SubmitResult:
    operation_id: str | None = None
    fields: dict | None = None
    confidence: float | None = None

    @property
    def is_async(self) -> bool:
        return self.operation_id is not None


@dataclass
class PollResult:
    status: OperationStatus
    fields: dict | None = None
    error: str | None = None
    retry_after: float | None = None


@dataclass
class Owner:
    owner_id: str
    display_name: str = ""
    email: str = ""
    organization: str = ""
    balance: int = 0


@dataclass
class CleanupLog:
    log_id: str
    started_at: datetime
    completed_at: datetime
    sessions_processed: int = 0
    sessions_expired: int = 0
    jobs_expired: int = 0
    blobs_deleted: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.errors:
            return "COMPLETED"
        if self.sessions_expired:
            return "COMPLETED_WITH_ERRORS"
        return "FAILED"


@dataclass
class SessionStatus:
    state: SessionState
    processed_count: int
    total_count: int


@dataclass
class JobResult:
    file_name: str
    fields: dict
    new_file_name: str | None


@dataclass
class UploadedDocument:
    file_name: str
    data: bytes
    content_type: str = "application/pdf"


class DefaultKind(str, Enum):
    STATIC = "STATIC"
    TODAY = "TODAY"
    CURRENT_USER = "CURRENT_USER"
    ORGANIZATION = "ORGANIZATION"
    EMPTY = "EMPTY"
    CALCULATED = "CALCULATED"


class TransformKind(str, Enum):
    NONE = "NONE"
    DATE_PARSE = "DATE_PARSE"
    NUMBER_FORMAT = "NUMBER_FORMAT"
    TEXT_REPLACE = "TEXT_REPLACE"


@dataclass
class FieldConfig:
    """Per-model default and transformation settings for one extracted field."""

    model_id: str
    field_name: str
    default_kind: DefaultKind = DefaultKind.EMPTY
    default_value: str = ""
    enabled: bool = True
    transformation: TransformKind = TransformKind.NONE
    transformation_config: dict = field(default_factory=dict)


@dataclass
class NamingElement:
    """One ordered piece of a filename template: literal text or a field reference."""

    kind: str
    value: str
    transform: str | None = None

    @property
    def is_field(self) -> bool:
        return self.kind == "field"


@dataclass
class AuditEvent:
    event_id: str
    event_type: str
    session_id: str | None
    performed_by: str
    created_at: datetime
    details: dict = field(default_factory=dict)


@dataclass
class ReportColumn:
    display_name: str | None = None
    visible: bool = True
    date_format: str | None = None


@dataclass
class ReportSettings:
    """Per-model column order and column options of the extraction report."""

    model_id: str
    column_order: list[str] = field(default_factory=list)
    columns: dict[str, ReportColumn] = field(default_factory=dict)


@dataclass
class SessionExport:
    path: str
    access_url: str
    expires_at: datetime
    file_count: int
    row_count: int
