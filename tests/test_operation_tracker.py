from datetime import datetime, timedelta, timezone

import pytest

from docflow.adapters.sqlite_storage import SQLiteStorage
from docflow.domain.errors import JobNotFoundError, PermanentUpstreamError, TransientUpstreamError
from docflow.domain.models import (
    Job,
    JobState,
    OperationStatus,
    PollResult,
    Session,
    SessionState,
    SubmitResult,
)
from docflow.services.operation_tracker import POLLING_WINDOW_EXPIRED, OperationTracker

NOW = datetime(2025, 6, 5, 12, 0, tzinfo=timezone.utc)


class ScriptedExtraction:
    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.polled: list[str] = []

    async def submit(self, document_url: str, model_id: str) -> SubmitResult:
        return SubmitResult(operation_id=f"{model_id}/analyzeResults/op-1")

    async def poll(self, operation_id: str) -> PollResult:
        self.polled.append(operation_id)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _storage_with_job(tmp_path, state: JobState = JobState.PROCESSING, **job_fields) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "docflow.db"))
    storage.create_session(
        Session(
            session_id="s-1",
            owner_id="1",
            state=SessionState.PROCESSING,
            storage_prefix="users/1/sessions/s-1/",
            model_id="prebuilt-invoice",
            created_at=NOW,
            expires_at=NOW + timedelta(hours=24),
        )
    )
    storage.create_jobs(
        [
            Job(
                job_id="job-1",
                session_id="s-1",
                state=state,
                file_name="a_page_1.pdf",
                source_ref="users/1/sessions/s-1/pages/a_page_1.pdf",
                created_at=NOW,
                parent_job_id="parent-1",
                page_number=1,
                **job_fields,
            )
        ]
    )
    return storage


def _succeeded() -> PollResult:
    return PollResult(status=OperationStatus.SUCCEEDED, fields={"InvoiceId": {"content": "T-1"}})


def _running(retry_after: float | None = None) -> PollResult:
    return PollResult(status=OperationStatus.RUNNING, retry_after=retry_after)


@pytest.mark.asyncio
async def test_start_polls_until_success_with_backoff(tmp_path) -> None:
    storage = _storage_with_job(tmp_path)
    extraction = ScriptedExtraction([_running(), _running(), _succeeded()])
    sleep = SleepRecorder()
    tracker = OperationTracker(storage, extraction, sleep=sleep, clock=lambda: NOW)

    state = await tracker.start("job-1", "op-1")

    assert state == JobState.COMPLETED
    assert sleep.delays == [2.0, 2.0, 5.0]
    job = storage.get_job("job-1")
    assert job.state == JobState.COMPLETED
    assert job.operation_id == "op-1"
    assert job.extracted_fields == {"InvoiceId": {"content": "T-1"}}
    assert job.last_polled_at is not None


@pytest.mark.asyncio
async def test_start_twice_shares_one_loop(tmp_path) -> None:
    storage = _storage_with_job(tmp_path)
    extraction = ScriptedExtraction([_succeeded()])
    tracker = OperationTracker(storage, extraction, sleep=SleepRecorder(), clock=lambda: NOW)

    first = tracker.start("job-1", "op-1")
    second = tracker.start("job-1", "op-1")

    assert first is second
    assert tracker.is_tracking("job-1")
    assert await first == JobState.COMPLETED
    assert extraction.polled == ["op-1"]
    assert not tracker.is_tracking("job-1")


@pytest.mark.asyncio
async def test_retry_after_takes_precedence_over_schedule(tmp_path) -> None:
    storage = _storage_with_job(tmp_path)
    extraction = ScriptedExtraction(
        [_running(retry_after=7.0), TransientUpstreamError("429: slow down", retry_after=3.0), _succeeded()]
    )
    sleep = SleepRecorder()
    tracker = OperationTracker(storage, extraction, sleep=sleep, clock=lambda: NOW)

    assert await tracker.start("job-1", "op-1") == JobState.COMPLETED
    assert sleep.delays == [2.0, 7.0, 3.0]


def test_next_delay_holds_at_end_of_schedule(tmp_path) -> None:
    tracker = OperationTracker(_storage_with_job(tmp_path), ScriptedExtraction([]))
    assert [tracker.next_delay(attempt) for attempt in range(6)] == [2.0, 5.0, 13.0, 34.0, 34.0, 34.0]
    assert tracker.next_delay(0, retry_after=1.5) == 1.5


@pytest.mark.asyncio
async def test_failed_operation_records_service_error(tmp_path) -> None:
    storage = _storage_with_job(tmp_path)
    extraction = ScriptedExtraction(
        [PollResult(status=OperationStatus.FAILED, error="Invalid document")]
    )
    tracker = OperationTracker(storage, extraction, sleep=SleepRecorder(), clock=lambda: NOW)

    assert await tracker.start("job-1", "op-1") == JobState.FAILED
    job = storage.get_job("job-1")
    assert job.error == "Invalid document"
    assert job.completed_at is not None


@pytest.mark.asyncio
async def test_permanent_poll_error_fails_job(tmp_path) -> None:
    storage = _storage_with_job(tmp_path)
    extraction = ScriptedExtraction([PermanentUpstreamError("404: Operation not found")])
    tracker = OperationTracker(storage, extraction, sleep=SleepRecorder(), clock=lambda: NOW)

    assert await tracker.start("job-1", "op-1") == JobState.FAILED
    assert storage.get_job("job-1").error == "404: Operation not found"


@pytest.mark.asyncio
async def test_polling_window_expiry_fails_job(tmp_path) -> None:
    storage = _storage_with_job(tmp_path)
    clock = MutableClock(NOW)
    extraction = ScriptedExtraction([_running(), _running()])

    async def sleep_past_window(delay: float) -> None:
        clock.now = clock.now + timedelta(hours=13)

    tracker = OperationTracker(storage, extraction, sleep=sleep_past_window, clock=clock)

    assert await tracker.start("job-1", "op-1") == JobState.FAILED
    assert storage.get_job("job-1").error == POLLING_WINDOW_EXPIRED
    assert len(extraction.polled) == 1


@pytest.mark.asyncio
async def test_resume_after_restart_polls_immediately(tmp_path) -> None:
    storage = _storage_with_job(
        tmp_path,
        state=JobState.POLLING,
        operation_id="op-9",
        polling_started_at=NOW - timedelta(hours=1),
    )
    extraction = ScriptedExtraction([_succeeded()])
    sleep = SleepRecorder()
    tracker = OperationTracker(storage, extraction, sleep=sleep, clock=lambda: NOW)

    assert tracker.resume_all() == 1
    assert await tracker.wait("job-1") == JobState.COMPLETED
    assert sleep.delays == []
    assert extraction.polled == ["op-9"]


@pytest.mark.asyncio
async def test_resume_past_window_fails_without_polling(tmp_path) -> None:
    storage = _storage_with_job(
        tmp_path,
        state=JobState.POLLING,
        operation_id="op-9",
        polling_started_at=NOW - timedelta(hours=25),
    )
    extraction = ScriptedExtraction([])
    tracker = OperationTracker(storage, extraction, clock=lambda: NOW)

    assert tracker.resume("job-1") is None
    job = storage.get_job("job-1")
    assert job.state == JobState.FAILED
    assert job.error == POLLING_WINDOW_EXPIRED
    assert extraction.polled == []


@pytest.mark.asyncio
async def test_resume_ignores_jobs_not_polling(tmp_path) -> None:
    storage = _storage_with_job(tmp_path, state=JobState.QUEUED)
    tracker = OperationTracker(storage, ScriptedExtraction([]), clock=lambda: NOW)

    assert tracker.resume("job-1") is None
    with pytest.raises(JobNotFoundError):
        tracker.resume("missing")


@pytest.mark.asyncio
async def test_expired_job_is_not_overwritten(tmp_path) -> None:
    storage = _storage_with_job(tmp_path)
    extraction = ScriptedExtraction([_running(), _succeeded()])

    async def expire_during_sleep(delay: float) -> None:
        storage.expire_session_jobs("s-1")

    tracker = OperationTracker(storage, extraction, sleep=expire_during_sleep, clock=lambda: NOW)

    assert await tracker.start("job-1", "op-1") == JobState.EXPIRED
    assert extraction.polled == []
