from datetime import datetime, timedelta, timezone

import pytest

from docflow.adapters.sqlite_storage import SQLiteStorage
from docflow.domain.errors import StorageError
from docflow.domain.models import (
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

NOW = datetime(2025, 6, 5, 12, 0, tzinfo=timezone.utc)


def _session(session_id: str = "s-1", state: SessionState = SessionState.UPLOADING) -> Session:
    return Session(
        session_id=session_id,
        owner_id="7",
        state=state,
        storage_prefix=f"users/7/sessions/{session_id}/",
        model_id="prebuilt-invoice",
        created_at=NOW,
        expires_at=NOW + timedelta(hours=24),
    )


def _job(
    job_id: str,
    state: JobState = JobState.QUEUED,
    parent: str | None = "parent",
    page: int | None = 1,
) -> Job:
    return Job(
        job_id=job_id,
        session_id="s-1",
        state=state,
        file_name=f"{job_id}.pdf",
        source_ref=f"users/7/sessions/s-1/pages/{job_id}.pdf",
        created_at=NOW,
        parent_job_id=parent,
        page_number=page,
    )


def test_session_round_trip_and_counters(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.create_session(_session())

    storage.set_session_totals("s-1", 2, 5)
    assert storage.increment_processed_pages("s-1") == 1
    assert storage.increment_processed_pages("s-1", 2) == 3
    assert storage.increment_post_processed("s-1", 3) == 3
    assert storage.update_session_state("s-1", SessionState.PROCESSING)

    fetched = storage.get_session("s-1")
    assert fetched.state == SessionState.PROCESSING
    assert (fetched.total_files, fetched.total_pages) == (2, 5)
    assert fetched.processed_pages == 3
    assert fetched.expires_at == NOW + timedelta(hours=24)
    assert storage.get_session("missing") is None


def test_list_sessions_by_state(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.create_session(_session("s-1", SessionState.PROCESSING))
    storage.create_session(_session("s-2", SessionState.COMPLETED))

    assert [s.session_id for s in storage.list_sessions([SessionState.PROCESSING])] == ["s-1"]
    assert len(storage.list_sessions()) == 2
    assert storage.list_sessions([]) == []


def test_expired_session_state_is_final(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.create_session(_session())

    assert storage.update_session_state("s-1", SessionState.EXPIRED)
    assert not storage.update_session_state("s-1", SessionState.PROCESSING)
    assert storage.get_session("s-1").state == SessionState.EXPIRED


def test_job_lifecycle_updates(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.create_session(_session())
    storage.create_jobs([_job("parent", parent=None, page=None), _job("p1"), _job("p2")])

    storage.start_job_polling("p1", "model/analyzeResults/op-1", NOW)
    assert [job.job_id for job in storage.list_polling_jobs()] == ["p1"]
    storage.touch_job_polled("p1", NOW + timedelta(seconds=2))
    assert storage.complete_job("p1", {"InvoiceId": {"content": "T-1"}}, NOW)
    assert storage.fail_job("p2", "Invalid document", NOW)

    p1 = storage.get_job("p1")
    assert p1.state == JobState.COMPLETED
    assert p1.operation_id == "model/analyzeResults/op-1"
    assert p1.polling_started_at == NOW
    assert p1.last_polled_at == NOW + timedelta(seconds=2)
    assert p1.extracted_fields == {"InvoiceId": {"content": "T-1"}}
    assert storage.get_job("p2").error == "Invalid document"

    assert [job.job_id for job in storage.list_jobs("s-1", children_only=True)] == ["p1", "p2"]
    assert [job.job_id for job in storage.list_jobs("s-1", states=[JobState.QUEUED])] == ["parent"]
    assert storage.list_polling_jobs() == []


def test_set_job_renamed_only_once(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.create_session(_session())
    storage.create_jobs([_job("p1", JobState.COMPLETED)])

    assert storage.set_job_renamed("p1", "users/7/sessions/s-1/processed/a.pdf", "a.pdf")
    assert not storage.set_job_renamed("p1", "users/7/sessions/s-1/processed/b.pdf", "b.pdf")
    assert storage.get_job("p1").new_filename == "a.pdf"


def test_expire_session_jobs_blocks_later_writes(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.create_session(_session())
    storage.create_jobs(
        [_job("queued"), _job("polling", JobState.POLLING), _job("done", JobState.COMPLETED)]
    )

    assert storage.expire_session_jobs("s-1") == 2
    assert not storage.complete_job("polling", {}, NOW)
    assert not storage.fail_job("queued", "late", NOW)
    assert not storage.update_job_state("queued", JobState.PROCESSING)
    assert storage.get_job("polling").state == JobState.EXPIRED
    assert storage.get_job("done").state == JobState.COMPLETED


def test_owner_balance(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.save_owner(Owner(owner_id="7", display_name="Dana", email="d@example.com", balance=3))

    assert storage.debit_owner("7", 1) == 2
    assert storage.get_owner("7") == Owner(
        owner_id="7", display_name="Dana", email="d@example.com", organization="", balance=2
    )
    assert storage.get_owner("missing") is None


def test_cleanup_logs_and_audit_events(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    log = CleanupLog(
        log_id="log-1",
        started_at=NOW,
        completed_at=NOW + timedelta(seconds=3),
        sessions_processed=2,
        sessions_expired=1,
        jobs_expired=4,
        blobs_deleted=9,
        errors=["s-2: refusing to delete"],
    )
    storage.save_cleanup_log(log)
    storage.add_audit_event(
        AuditEvent(
            event_id="e-1",
            event_type="SESSION_EXPIRED",
            session_id="s-1",
            performed_by="system",
            created_at=NOW,
            details={"blobs_deleted": 9},
        )
    )

    assert storage.list_cleanup_logs() == [log]
    events = storage.list_audit_events("s-1")
    assert events[0].details == {"blobs_deleted": 9}
    assert storage.list_audit_events("other") == []


def test_field_configs_and_naming_elements_replace_per_model(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    configs = [
        FieldConfig(
            model_id="m",
            field_name="Status",
            default_kind=DefaultKind.STATIC,
            default_value="Open",
        ),
        FieldConfig(
            model_id="m",
            field_name="Total",
            transformation=TransformKind.NUMBER_FORMAT,
            transformation_config={"decimals": 0},
            enabled=False,
        ),
    ]
    storage.save_field_configs("m", configs)
    storage.save_field_configs("m", configs[:1])
    assert storage.get_field_configs("m") == configs[:1]

    elements = [NamingElement("field", "company", "uppercase"), NamingElement("text", "-")]
    storage.save_naming_elements("m", elements)
    assert storage.get_naming_elements("m") == elements
    assert storage.get_naming_elements("other") == []


def test_report_settings_round_trip_and_replace(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "docflow.db"))
    settings = ReportSettings(
        model_id="m",
        column_order=["Total", "InvoiceDate"],
        columns={
            "Total": ReportColumn(display_name="Amount"),
            "InvoiceDate": ReportColumn(date_format="MM/DD/YYYY"),
            "VendorName": ReportColumn(visible=False),
        },
    )

    assert storage.get_report_settings("m") is None
    storage.save_report_settings(settings)
    assert storage.get_report_settings("m") == settings

    replacement = ReportSettings(model_id="m", column_order=["InvoiceDate"])
    storage.save_report_settings(replacement)
    assert storage.get_report_settings("m") == replacement


def test_storage_errors_are_wrapped(tmp_path) -> None:
    target = tmp_path / "dir.db"
    target.mkdir()
    with pytest.raises(StorageError):
        SQLiteStorage(str(target))
