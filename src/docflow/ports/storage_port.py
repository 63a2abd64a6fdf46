from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol

from docflow.domain.models import (
    AuditEvent,
    CleanupLog,
    FieldConfig,
    Job,
    JobState,
    NamingElement,
    Owner,
    ReportSettings,
    Session,
    SessionState,
)


class StoragePort(Protocol):
    def create_session(self, session: Session) -> None:
        """Persist a new session."""

    def get_session(self, session_id: str) -> Session | None:
        """Return a session by id, or None if missing."""

    def list_sessions(self, states: Iterable[SessionState] | None = None) -> list[Session]:
        """Return sessions, optionally filtered by state."""

    def update_session_state(self, session_id: str, state: SessionState) -> bool:
        """Set the session state; an EXPIRED session only accepts EXPIRED."""

    def update_session_expiry(self, session_id: str, expires_at: datetime) -> None:
        """Persist a new expiry time."""

    def set_session_totals(self, session_id: str, total_files: int, total_pages: int) -> None:
        """Persist the file and page counts of a session."""

    def increment_processed_pages(self, session_id: str, amount: int = 1) -> int:
        """Atomically add to processed_pages and return the new value."""

    def increment_post_processed(self, session_id: str, amount: int = 1) -> int:
        """Atomically add to post_processed_count and return the new value."""

    def create_jobs(self, jobs: list[Job]) -> None:
        """Persist new jobs."""

    def get_job(self, job_id: str) -> Job | None:
        """Return a job by id, or None if missing."""

    def list_jobs(
        self,
        session_id: str | None = None,
        states: Iterable[JobState] | None = None,
        children_only: bool = False,
    ) -> list[Job]:
        """Return jobs filtered by session, state and parentage."""

    def list_polling_jobs(self) -> list[Job]:
        """Return every POLLING job that carries an operation id."""

    def update_job_state(self, job_id: str, state: JobState, error: str | None = None) -> bool:
        """Move a non-expired job to a new state."""

    def start_job_polling(self, job_id: str, operation_id: str, started_at: datetime) -> None:
        """Record the operation id and polling start, and move the job to POLLING."""

    def touch_job_polled(self, job_id: str, polled_at: datetime) -> None:
        """Record the time of the latest poll."""

    def complete_job(self, job_id: str, fields: dict, completed_at: datetime) -> bool:
        """Store the extracted fields and mark the job COMPLETED in one write."""

    def fail_job(self, job_id: str, error: str, completed_at: datetime) -> bool:
        """Mark the job FAILED with its error message."""

    def update_job_fields(self, job_id: str, fields: dict) -> None:
        """Replace the extracted fields of a job."""

    def set_job_renamed(self, job_id: str, renamed_ref: str, new_filename: str) -> bool:
        """Record the renamed artifact unless the job already carries one."""

    def expire_session_jobs(self, session_id: str) -> int:
        """Mark every non-terminal job of the session EXPIRED; returns the count."""

    def save_owner(self, owner: Owner) -> None:
        """Insert or replace an owner."""

    def get_owner(self, owner_id: str) -> Owner | None:
        """Return an owner by id, or None if missing."""

    def debit_owner(self, owner_id: str, amount: int) -> int:
        """Atomically subtract from the owner's balance and return the new balance."""

    def save_cleanup_log(self, log: CleanupLog) -> None:
        """Append a cleanup log."""

    def list_cleanup_logs(self) -> list[CleanupLog]:
        """Return cleanup logs, oldest first."""

    def add_audit_event(self, event: AuditEvent) -> None:
        """Append an audit event."""

    def list_audit_events(self, session_id: str | None = None) -> list[AuditEvent]:
        """Return audit events, optionally for one session."""

    def save_field_configs(self, model_id: str, configs: list[FieldConfig]) -> None:
        """Replace the field configs of a model."""

    def get_field_configs(self, model_id: str) -> list[FieldConfig]:
        """Return the field configs of a model."""

    def save_naming_elements(self, model_id: str, elements: list[NamingElement]) -> None:
        """Replace the ordered filename template of a model."""

    def get_naming_elements(self, model_id: str) -> list[NamingElement]:
        """Return the ordered filename template of a model."""

    def save_report_settings(self, settings: ReportSettings) -> None:
        """Replace the extraction report column settings of a model."""

    def get_report_settings(self, model_id: str) -> ReportSettings | None:
        """Return the extraction report column settings of a model, if any."""
