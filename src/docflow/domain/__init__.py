from .dates import normalize_date, parse_date
from .errors import (
    ArtifactNotFoundError,
    DocflowError,
    DocumentReadError,
    InsufficientBalanceError,
    JobNotFoundError,
    NothingToExportError,
    OwnerNotFoundError,
    PermanentError,
    PermanentUpstreamError,
    RetryableError,
    SafetyViolationError,
    SessionNotFoundError,
    StorageError,
    TransientUpstreamError,
)
from .field_discovery import DEFAULT_RULES, DiscoveredFields, FieldRule, discover_fields
from .models import (
    AuditEvent,
    CleanupLog,
    DefaultKind,
    FieldConfig,
    Job,
    JobState,
    NamingElement,
    Operation,
    OperationStatus,
    Owner,
    PollResult,
    ReportColumn,
    ReportSettings,
    Session,
    SessionExport,
    SessionState,
    SubmitResult,
    TransformKind,
)
from .naming import build_filename, parse_template, resolve_collision, sanitize_component
from .report_rendering import (
    REPORT_FIXED_HEADERS,
    archive_member_name,
    report_columns,
    report_rows,
)

__all__ = [
    "ArtifactNotFoundError",
    "AuditEvent",
    "CleanupLog",
    "DEFAULT_RULES",
    "DefaultKind",
    "DiscoveredFields",
    "DocflowError",
    "DocumentReadError",
    "FieldConfig",
    "FieldRule",
    "InsufficientBalanceError",
    "Job",
    "JobNotFoundError",
    "JobState",
    "NamingElement",
    "NothingToExportError",
    "Operation",
    "OperationStatus",
    "Owner",
    "OwnerNotFoundError",
    "PermanentError",
    "PermanentUpstreamError",
    "PollResult",
    "REPORT_FIXED_HEADERS",
    "ReportColumn",
    "ReportSettings",
    "RetryableError",
    "SafetyViolationError",
    "Session",
    "SessionExport",
    "SessionNotFoundError",
    "SessionState",
    "StorageError",
    "SubmitResult",
    "TransformKind",
    "TransientUpstreamError",
    "archive_member_name",
    "build_filename",
    "discover_fields",
    "normalize_date",
    "parse_date",
    "parse_template",
    "report_columns",
    "report_rows",
    "resolve_collision",
    "sanitize_component",
]
