from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Iterable

from docflow.domain.errors import StorageError
from docflow.domain.models import (
    NON_TERMINAL_JOB_STATES,
    AuditEvent,
    CleanupLog,
    DefaultKind,
    FieldConfig,
    Job,
    JobState,
    NamingElement,
    Owner,
    ReportColumn,
    ReportSettings,
    Session,
    SessionState,
    TransformKind,
)
from docflow.ports.storage_port import StoragePort

_SESSION_COLUMNS = """
    session_id, owner_id, state, storage_prefix, model_id, created_at, expires_at,
    total_files, total_pages, processed_pages, post_processed_count
"""

_JOB_COLUMNS = """
    job_id, session_id, state, file_name, source_ref, created_at, parent_job_id,
    page_number, extracted_fields, renamed_ref, new_filename, operation_id,
    polling_started_at, last_polled_at, error, completed_at
"""

_NON_TERMINAL_VALUES = tuple(sorted(state.value for state in NON_TERMINAL_JOB_STATES))


class SQLiteStorage(StoragePort):
    def __init__(self, sqlite_path: str) -> None:
        self._sqlite_path = sqlite_path
        self._ensure_schema()

    def create_session(self, session: Session) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO sessions({_SESSION_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        session.session_id,
                        session.owner_id,
                        SessionState(session.state).value,
                        session.storage_prefix,
                        session.model_id,
                        session.created_at.isoformat(),
                        session.expires_at.isoformat(),
                        session.total_files,
                        session.total_pages,
                        session.processed_pages,
                        session.post_processed_count,
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to create session") from exc

    def get_session(self, session_id: str) -> Session | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE session_id = ?",
                    (session_id,),
                ).fetchone()
            return _row_to_session(row) if row is not None else None
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch session") from exc

    def list_sessions(self, states: Iterable[SessionState] | None = None) -> list[Session]:
        query = f"SELECT {_SESSION_COLUMNS} FROM sessions"
        params: list[str] = []
        if states is not None:
            values = [SessionState(state).value for state in states]
            if not values:
                return []
            query += f" WHERE state IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        query += " ORDER BY created_at ASC"
        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
            return [_row_to_session(row) for row in rows]
        except sqlite3.Error as exc:
            raise StorageError("Failed to list sessions") from exc

    def update_session_state(self, session_id: str, state: SessionState) -> bool:
        state = SessionState(state)
        try:
            with self._connect() as conn:
                if state == SessionState.EXPIRED:
                    cursor = conn.execute(
                        "UPDATE sessions SET state = ? WHERE session_id = ?",
                        (state.value, session_id),
                    )
                else:
                    cursor = conn.execute(
                        "UPDATE sessions SET state = ? WHERE session_id = ? AND state != ?",
                        (state.value, session_id, SessionState.EXPIRED.value),
                    )
            return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageError("Failed to update session state") from exc

    def update_session_expiry(self, session_id: str, expires_at: datetime) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE sessions SET expires_at = ? WHERE session_id = ?",
                    (expires_at.isoformat(), session_id),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to update session expiry") from exc

    def set_session_totals(self, session_id: str, total_files: int, total_pages: int) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE sessions SET total_files = ?, total_pages = ? WHERE session_id = ?",
                    (total_files, total_pages, session_id),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to update session totals") from exc

    def increment_processed_pages(self, session_id: str, amount: int = 1) -> int:
        return self._increment_session_counter(session_id, "processed_pages", amount)

    def increment_post_processed(self, session_id: str, amount: int = 1) -> int:
        return self._increment_session_counter(session_id, "post_processed_count", amount)

    def create_jobs(self, jobs: list[Job]) -> None:
        try:
            with self._connect() as conn:
                conn.executemany(
                    f"INSERT INTO jobs({_JOB_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [_job_to_row(job) for job in jobs],
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to create jobs") from exc

    def get_job(self, job_id: str) -> Job | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_JOB_COLUMNS} FROM jobs WHERE job_id = ?",
                    (job_id,),
                ).fetchone()
            return _row_to_job(row) if row is not None else None
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch job") from exc

    def list_jobs(
        self,
        session_id: str | None = None,
        states: Iterable[JobState] | None = None,
        children_only: bool = False,
    ) -> list[Job]:
        clauses: list[str] = []
        params: list[str] = []
        if session_id is not None:
            clauses.append("session_id = ?")
            params.append(session_id)
        if states is not None:
            values = [JobState(state).value for state in states]
            if not values:
                return []
            clauses.append(f"state IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        if children_only:
            clauses.append("parent_job_id IS NOT NULL")
        query = f"SELECT {_JOB_COLUMNS} FROM jobs"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at ASC, page_number ASC, rowid ASC"
        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
            return [_row_to_job(row) for row in rows]
        except sqlite3.Error as exc:
            raise StorageError("Failed to list jobs") from exc

    def list_polling_jobs(self) -> list[Job]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"""
                    SELECT {_JOB_COLUMNS} FROM jobs
                    WHERE state = ? AND operation_id IS NOT NULL
                    ORDER BY polling_started_at ASC
                    """,
                    (JobState.POLLING.value,),
                ).fetchall()
            return [_row_to_job(row) for row in rows]
        except sqlite3.Error as exc:
            raise StorageError("Failed to list polling jobs") from exc

    def update_job_state(self, job_id: str, state: JobState, error: str | None = None) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE jobs SET state = ?, error = COALESCE(?, error)
                    WHERE job_id = ? AND state != ?
                    """,
                    (JobState(state).value, error, job_id, JobState.EXPIRED.value),
                )
            return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageError("Failed to update job state") from exc

    def start_job_polling(self, job_id: str, operation_id: str, started_at: datetime) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    UPDATE jobs
                    SET state = ?, operation_id = ?, polling_started_at = ?, last_polled_at = NULL
                    WHERE job_id = ? AND state != ?
                    """,
                    (
                        JobState.POLLING.value,
                        operation_id,
                        started_at.isoformat(),
                        job_id,
                        JobState.EXPIRED.value,
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to start job polling") from exc

    def touch_job_polled(self, job_id: str, polled_at: datetime) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE jobs SET last_polled_at = ? WHERE job_id = ?",
                    (polled_at.isoformat(), job_id),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to record job poll") from exc

    def complete_job(self, job_id: str, fields: dict, completed_at: datetime) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE jobs
                    SET state = ?, extracted_fields = ?, completed_at = ?, error = NULL
                    WHERE job_id = ? AND state != ?
                    """,
                    (
                        JobState.COMPLETED.value,
                        json.dumps(fields),
                        completed_at.isoformat(),
                        job_id,
                        JobState.EXPIRED.value,
                    ),
                )
            return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageError("Failed to complete job") from exc

    def fail_job(self, job_id: str, error: str, completed_at: datetime) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE jobs SET state = ?, error = ?, completed_at = ?
                    WHERE job_id = ? AND state != ?
                    """,
                    (
                        JobState.FAILED.value,
                        error,
                        completed_at.isoformat(),
                        job_id,
                        JobState.EXPIRED.value,
                    ),
                )
            return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageError("Failed to fail job") from exc

    def update_job_fields(self, job_id: str, fields: dict) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE jobs SET extracted_fields = ? WHERE job_id = ?",
                    (json.dumps(fields), job_id),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to update job fields") from exc

    def set_job_renamed(self, job_id: str, renamed_ref: str, new_filename: str) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE jobs SET renamed_ref = ?, new_filename = ?
                    WHERE job_id = ? AND renamed_ref IS NULL AND new_filename IS NULL
                    """,
                    (renamed_ref, new_filename, job_id),
                )
            return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageError("Failed to record renamed job") from exc

    def expire_session_jobs(self, session_id: str) -> int:
        placeholders = ", ".join("?" for _ in _NON_TERMINAL_VALUES)
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"""
                    UPDATE jobs SET state = ?
                    WHERE session_id = ? AND state IN ({placeholders})
                    """,
                    (JobState.EXPIRED.value, session_id, *_NON_TERMINAL_VALUES),
                )
            return cursor.rowcount
        except sqlite3.Error as exc:
            raise StorageError("Failed to expire session jobs") from exc

    def save_owner(self, owner: Owner) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO owners(owner_id, display_name, email, organization, balance)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        owner.owner_id,
                        owner.display_name,
                        owner.email,
                        owner.organization,
                        owner.balance,
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to save owner") from exc

    def get_owner(self, owner_id: str) -> Owner | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT owner_id, display_name, email, organization, balance
                    FROM owners WHERE owner_id = ?
                    """,
                    (owner_id,),
                ).fetchone()
            if row is None:
                return None
            return Owner(
                owner_id=row[0],
                display_name=row[1] or "",
                email=row[2] or "",
                organization=row[3] or "",
                balance=row[4],
            )
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch owner") from exc

    def debit_owner(self, owner_id: str, amount: int) -> int:
        try:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE owners SET balance = balance - ? WHERE owner_id = ?",
                    (amount, owner_id),
                )
                row = conn.execute(
                    "SELECT balance FROM owners WHERE owner_id = ?", (owner_id,)
                ).fetchone()
            return row[0] if row is not None else 0
        except sqlite3.Error as exc:
            raise StorageError("Failed to debit owner") from exc

    def save_cleanup_log(self, log: CleanupLog) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO cleanup_logs(
                        log_id, started_at, completed_at, sessions_processed,
                        sessions_expired, jobs_expired, blobs_deleted, errors_json, status
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        log.log_id,
                        log.started_at.isoformat(),
                        log.completed_at.isoformat(),
                        log.sessions_processed,
                        log.sessions_expired,
                        log.jobs_expired,
                        log.blobs_deleted,
                        json.dumps(log.errors),
                        log.status,
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to save cleanup log") from exc

    def list_cleanup_logs(self) -> list[CleanupLog]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT log_id, started_at, completed_at, sessions_processed,
                           sessions_expired, jobs_expired, blobs_deleted, errors_json
                    FROM cleanup_logs
                    ORDER BY started_at ASC, rowid ASC
                    """
                ).fetchall()
            return [
                CleanupLog(
                    log_id=row[0],
                    started_at=datetime.fromisoformat(row[1]),
                    completed_at=datetime.fromisoformat(row[2]),
                    sessions_processed=row[3],
                    sessions_expired=row[4],
                    jobs_expired=row[5],
                    blobs_deleted=row[6],
                    errors=json.loads(row[7]) if row[7] else [],
                )
                for row in rows
            ]
        except sqlite3.Error as exc:
            raise StorageError("Failed to list cleanup logs") from exc

    def add_audit_event(self, event: AuditEvent) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO audit_events(
                        event_id, event_type, session_id, performed_by, created_at, details_json
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.event_id,
                        event.event_type,
                        event.session_id,
                        event.performed_by,
                        event.created_at.isoformat(),
                        json.dumps(event.details),
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to add audit event") from exc

    def list_audit_events(self, session_id: str | None = None) -> list[AuditEvent]:
        query = """
            SELECT event_id, event_type, session_id, performed_by, created_at, details_json
            FROM audit_events
        """
        params: tuple[str, ...] = ()
        if session_id is not None:
            query += " WHERE session_id = ?"
            params = (session_id,)
        query += " ORDER BY created_at ASC, rowid ASC"
        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
            return [
                AuditEvent(
                    event_id=row[0],
                    event_type=row[1],
                    session_id=row[2],
                    performed_by=row[3],
                    created_at=datetime.fromisoformat(row[4]),
                    details=json.loads(row[5]) if row[5] else {},
                )
                for row in rows
            ]
        except sqlite3.Error as exc:
            raise StorageError("Failed to list audit events") from exc

    def save_field_configs(self, model_id: str, configs: list[FieldConfig]) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM field_configs WHERE model_id = ?", (model_id,))
                conn.executemany(
                    """
                    INSERT INTO field_configs(
                        model_id, field_name, default_kind, default_value, enabled,
                        transformation, transformation_config_json, sort_index
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            model_id,
                            config.field_name,
                            DefaultKind(config.default_kind).value,
                            config.default_value,
                            1 if config.enabled else 0,
                            TransformKind(config.transformation).value,
                            json.dumps(config.transformation_config or {}),
                            index,
                        )
                        for index, config in enumerate(configs)
                    ],
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to save field configs") from exc

    def get_field_configs(self, model_id: str) -> list[FieldConfig]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT model_id, field_name, default_kind, default_value, enabled,
                           transformation, transformation_config_json
                    FROM field_configs
                    WHERE model_id = ?
                    ORDER BY sort_index ASC
                    """,
                    (model_id,),
                ).fetchall()
            return [
                FieldConfig(
                    model_id=row[0],
                    field_name=row[1],
                    default_kind=DefaultKind(row[2]),
                    default_value=row[3] or "",
                    enabled=bool(row[4]),
                    transformation=TransformKind(row[5]),
                    transformation_config=json.loads(row[6]) if row[6] else {},
                )
                for row in rows
            ]
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch field configs") from exc

    def save_naming_elements(self, model_id: str, elements: list[NamingElement]) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM naming_elements WHERE model_id = ?", (model_id,))
                conn.executemany(
                    """
                    INSERT INTO naming_elements(model_id, kind, value, transform, sort_index)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (model_id, element.kind, element.value, element.transform, index)
                        for index, element in enumerate(elements)
                    ],
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to save naming elements") from exc

    def get_naming_elements(self, model_id: str) -> list[NamingElement]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT kind, value, transform
                    FROM naming_elements
                    WHERE model_id = ?
                    ORDER BY sort_index ASC
                    """,
                    (model_id,),
                ).fetchall()
            return [NamingElement(kind=row[0], value=row[1], transform=row[2]) for row in rows]
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch naming elements") from exc

    def save_report_settings(self, settings: ReportSettings) -> None:
        columns = {
            name: {
                "display_name": column.display_name,
                "visible": column.visible,
                "date_format": column.date_format,
            }
            for name, column in settings.columns.items()
        }
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO report_settings(model_id, column_order_json, columns_json)
                    VALUES (?, ?, ?)
                    ON CONFLICT(model_id) DO UPDATE SET
                        column_order_json = excluded.column_order_json,
                        columns_json = excluded.columns_json
                    """,
                    (settings.model_id, json.dumps(settings.column_order), json.dumps(columns)),
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to save report settings") from exc

    def get_report_settings(self, model_id: str) -> ReportSettings | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT model_id, column_order_json, columns_json
                    FROM report_settings
                    WHERE model_id = ?
                    """,
                    (model_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError("Failed to fetch report settings") from exc
        if row is None:
            return None
        columns = json.loads(row[2]) if row[2] else {}
        return ReportSettings(
            model_id=row[0],
            column_order=json.loads(row[1]) if row[1] else [],
            columns={
                name: ReportColumn(
                    display_name=options.get("display_name"),
                    visible=options.get("visible", True),
                    date_format=options.get("date_format"),
                )
                for name, options in columns.items()
            },
        )

    def _increment_session_counter(self, session_id: str, column: str, amount: int) -> int:
        try:
            with self._connect() as conn:
                conn.execute(
                    f"UPDATE sessions SET {column} = {column} + ? WHERE session_id = ?",
                    (amount, session_id),
                )
                row = conn.execute(
                    f"SELECT {column} FROM sessions WHERE session_id = ?",
                    (session_id,),
                ).fetchone()
            return row[0] if row is not None else 0
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to increment {column}") from exc

    def _ensure_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS sessions(
                        session_id TEXT PRIMARY KEY,
                        owner_id TEXT NOT NULL,
                        state TEXT NOT NULL,
                        storage_prefix TEXT,
                        model_id TEXT,
                        created_at TEXT,
                        expires_at TEXT,
                        total_files INTEGER DEFAULT 0,
                        total_pages INTEGER DEFAULT 0,
                        processed_pages INTEGER DEFAULT 0,
                        post_processed_count INTEGER DEFAULT 0
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS jobs(
                        job_id TEXT PRIMARY KEY,
                        session_id TEXT NOT NULL,
                        state TEXT NOT NULL,
                        file_name TEXT,
                        source_ref TEXT,
                        created_at TEXT,
                        parent_job_id TEXT,
                        page_number INTEGER,
                        extracted_fields TEXT,
                        renamed_ref TEXT,
                        new_filename TEXT,
                        operation_id TEXT,
                        polling_started_at TEXT,
                        last_polled_at TEXT,
                        error TEXT,
                        completed_at TEXT
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_jobs_session_state ON jobs(session_id, state)"
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS owners(
                        owner_id TEXT PRIMARY KEY,
                        display_name TEXT,
                        email TEXT,
                        organization TEXT,
                        balance INTEGER DEFAULT 0
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS cleanup_logs(
                        log_id TEXT PRIMARY KEY,
                        started_at TEXT,
                        completed_at TEXT,
                        sessions_processed INTEGER,
                        sessions_expired INTEGER,
                        jobs_expired INTEGER,
                        blobs_deleted INTEGER,
                        errors_json TEXT,
                        status TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS audit_events(
                        event_id TEXT PRIMARY KEY,
                        event_type TEXT,
                        session_id TEXT,
                        performed_by TEXT,
                        created_at TEXT,
                        details_json TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS field_configs(
                        model_id TEXT,
                        field_name TEXT,
                        default_kind TEXT,
                        default_value TEXT,
                        enabled INTEGER,
                        transformation TEXT,
                        transformation_config_json TEXT,
                        sort_index INTEGER
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS naming_elements(
                        model_id TEXT,
                        kind TEXT,
                        value TEXT,
                        transform TEXT,
                        sort_index INTEGER
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS report_settings(
                        model_id TEXT PRIMARY KEY,
                        column_order_json TEXT,
                        columns_json TEXT
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise StorageError("Failed to initialize database schema") from exc

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._sqlite_path)


def _row_to_session(row: tuple) -> Session:
    return Session(
        session_id=row[0],
        owner_id=row[1],
        state=SessionState(row[2]),
        storage_prefix=row[3] or "",
        model_id=row[4] or "",
        created_at=datetime.fromisoformat(row[5]),
        expires_at=datetime.fromisoformat(row[6]),
        total_files=row[7] or 0,
        total_pages=row[8] or 0,
        processed_pages=row[9] or 0,
        post_processed_count=row[10] or 0,
    )


def _job_to_row(job: Job) -> tuple:
    return (
        job.job_id,
        job.session_id,
        JobState(job.state).value,
        job.file_name,
        job.source_ref,
        job.created_at.isoformat(),
        job.parent_job_id,
        job.page_number,
        json.dumps(job.extracted_fields) if job.extracted_fields is not None else None,
        job.renamed_ref,
        job.new_filename,
        job.operation_id,
        _iso_or_none(job.polling_started_at),
        _iso_or_none(job.last_polled_at),
        job.error,
        _iso_or_none(job.completed_at),
    )


def _row_to_job(row: tuple) -> Job:
    return Job(
        job_id=row[0],
        session_id=row[1],
        state=JobState(row[2]),
        file_name=row[3] or "",
        source_ref=row[4] or "",
        created_at=datetime.fromisoformat(row[5]),
        parent_job_id=row[6],
        page_number=row[7],
        extracted_fields=json.loads(row[8]) if row[8] else None,
        renamed_ref=row[9],
        new_filename=row[10],
        operation_id=row[11],
        polling_started_at=_datetime_or_none(row[12]),
        last_polled_at=_datetime_or_none(row[13]),
        error=row[14],
        completed_at=_datetime_or_none(row[15]),
    )


def _iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _datetime_or_none(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
