from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from docflow.domain.errors import (
    ArtifactNotFoundError,
    DocflowError,
    SessionNotFoundError,
    TransientUpstreamError,
)
from docflow.domain.models import (
    NON_TERMINAL_JOB_STATES,
    Job,
    JobState,
    Session,
    SessionState,
    SubmitResult,
)
from docflow.ports.extraction_port import ExtractionPort
from docflow.ports.object_store_port import ObjectStorePort
from docflow.ports.storage_port import StoragePort
from docflow.services.operation_tracker import OperationTracker
from docflow.services.post_processing import PostProcessingService
from docflow.services.rate_limiter import BackoffTracker, TokenBucketRateLimiter
from docflow.services.time_utils import utc_now

logger = logging.getLogger(__name__)

DISPATCHABLE_SESSION_STATES = frozenset(
    {SessionState.UPLOADING, SessionState.PROCESSING, SessionState.POST_PROCESSING}
)


class JobDispatcher:
    """
    Drains a session's queued page jobs through the extraction service.

    At most ``max_concurrent`` jobs are in flight; every submission takes a
    rate-limit token first. A failed job is recorded and never stops its
    siblings. Once every job settled the session is post-processed and moved
    to its terminal state.
    """

    def __init__(
        self,
        storage: StoragePort,
        object_store: ObjectStorePort,
        extraction: ExtractionPort,
        tracker: OperationTracker,
        post_processor: PostProcessingService,
        rate_limiter: TokenBucketRateLimiter,
        backoff: BackoffTracker | None = None,
        max_concurrent: int = 1,
        unit_cost: int = 1,
        unmetered_owner_id: str | None = None,
        access_url_ttl_seconds: int = 3600,
        max_submit_attempts: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if max_submit_attempts < 1:
            raise ValueError("max_submit_attempts must be at least 1")
        self._storage = storage
        self._object_store = object_store
        self._extraction = extraction
        self._tracker = tracker
        self._post_processor = post_processor
        self._rate_limiter = rate_limiter
        self._backoff = backoff or BackoffTracker()
        self._max_concurrent = max_concurrent
        self._unit_cost = unit_cost
        self._unmetered_owner_id = unmetered_owner_id
        self._access_url_ttl_seconds = access_url_ttl_seconds
        self._max_submit_attempts = max_submit_attempts
        self._clock = clock
        tracker.add_completion_listener(self._on_tracked_completion)

    async def dispatch_session(self, session_id: str) -> Session:
        session = self._get_session(session_id)
        if session.state not in DISPATCHABLE_SESSION_STATES:
            logger.info(
                "Session is not dispatchable",
                extra={"session_id": session_id, "state": session.state.value},
            )
            return session
        if session.state == SessionState.UPLOADING:
            self._storage.update_session_state(session_id, SessionState.PROCESSING)

        in_flight: dict[asyncio.Task[JobState], str] = {}
        try:
            await self._drain(session, in_flight)
        except asyncio.CancelledError:
            for task in in_flight:
                task.cancel()
            raise
        return await self.settle_session(session_id)

    async def _drain(self, session: Session, in_flight: dict[asyncio.Task[JobState], str]) -> None:
        session_id = session.session_id
        for job in self._storage.list_jobs(
            session_id, states=[JobState.POLLING], children_only=True
        ):
            task = self._tracker.resume(job.job_id)
            if task is not None:
                in_flight[task] = job.job_id

        queued = self._storage.list_jobs(session_id, states=[JobState.QUEUED], children_only=True)
        logger.info(
            "Dispatching session",
            extra={"session_id": session_id, "count": len(queued), "state": session.state.value},
        )
        pending_submissions: set[asyncio.Task[JobState]] = set()
        for job in queued:
            while len(pending_submissions) >= self._max_concurrent:
                done, pending_submissions = await asyncio.wait(
                    pending_submissions, return_when=asyncio.FIRST_COMPLETED
                )
                self._collect(done, in_flight)
            task = asyncio.ensure_future(self._process_job(session, job))
            in_flight[task] = job.job_id
            pending_submissions.add(task)

        if in_flight:
            done, _ = await asyncio.wait(list(in_flight))
            self._collect(done, in_flight)

    async def settle_session(self, session_id: str) -> Session:
        """Post-process and finalize a session once none of its page jobs is in progress."""

        session = self._get_session(session_id)
        if session.state == SessionState.EXPIRED:
            return session
        remaining = self._storage.list_jobs(
            session_id, states=NON_TERMINAL_JOB_STATES, children_only=True
        )
        if remaining:
            logger.info(
                "Session still has unsettled jobs",
                extra={"session_id": session_id, "count": len(remaining)},
            )
            return session
        if not self._storage.update_session_state(session_id, SessionState.POST_PROCESSING):
            return self._get_session(session_id)

        try:
            await self._post_processor.post_process_session(session_id)
        except Exception:
            logger.exception("Post-processing failed", extra={"session_id": session_id})

        children = self._storage.list_jobs(session_id, children_only=True)
        self._settle_parent_jobs(session_id, children)
        all_completed = all(job.state == JobState.COMPLETED for job in children)
        final_state = SessionState.COMPLETED if all_completed else SessionState.FAILED
        self._storage.update_session_state(session_id, final_state)
        logger.info(
            "Session settled", extra={"session_id": session_id, "state": final_state.value}
        )
        return self._get_session(session_id)

    async def _process_job(self, session: Session, job: Job) -> JobState:
        job_id = job.job_id
        if not self._storage.update_job_state(job_id, JobState.PROCESSING):
            return self._job_state(job_id)
        try:
            if not await self._object_store.exists(job.source_ref):
                raise ArtifactNotFoundError(f"Source artifact missing: {job.source_ref}")
            document_url = await self._object_store.generate_access_url(
                job.source_ref, self._access_url_ttl_seconds
            )
            result = await self._submit(document_url, session.model_id, job_id)
            if result.is_async:
                state = await self._tracker.start(job_id, result.operation_id)
            else:
                if self._storage.complete_job(job_id, result.fields or {}, self._clock()):
                    self._record_completion(session, job_id)
                state = self._job_state(job_id)
        except DocflowError as exc:
            self._storage.fail_job(job_id, str(exc), self._clock())
            logger.warning("Job failed", extra={"job_id": job_id, "error": str(exc)})
            state = self._job_state(job_id)
        return state

    def _on_tracked_completion(self, job_id: str) -> None:
        job = self._storage.get_job(job_id)
        if job is None:
            return
        session = self._storage.get_session(job.session_id)
        if session is None:
            return
        self._record_completion(session, job_id)

    async def _submit(self, document_url: str, model_id: str, job_id: str) -> SubmitResult:
        attempt = 0
        while True:
            attempt += 1
            await self._rate_limiter.acquire()
            try:
                result = await self._extraction.submit(document_url, model_id)
            except TransientUpstreamError as exc:
                if attempt >= self._max_submit_attempts:
                    raise
                logger.warning(
                    "Transient submit error, backing off",
                    extra={"job_id": job_id, "attempt": attempt, "error": str(exc)},
                )
                await self._backoff.wait(at_least=exc.retry_after)
                continue
            self._backoff.report_success()
            return result

    def _record_completion(self, session: Session, job_id: str) -> None:
        if session.owner_id != self._unmetered_owner_id and self._unit_cost:
            balance = self._storage.debit_owner(session.owner_id, self._unit_cost)
            logger.debug(
                "Charged owner",
                extra={"owner_id": session.owner_id, "job_id": job_id, "count": balance},
            )
        self._storage.increment_processed_pages(session.session_id)

    def _collect(self, done: set[asyncio.Task[JobState]], in_flight: dict) -> None:
        for task in done:
            job_id = in_flight.pop(task, None)
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is None:
                continue
            logger.error(
                "Unexpected error while processing job",
                exc_info=exc,
                extra={"job_id": job_id},
            )
            if job_id is not None:
                self._storage.fail_job(job_id, str(exc) or type(exc).__name__, self._clock())

    def _settle_parent_jobs(self, session_id: str, children: list[Job]) -> None:
        by_parent: dict[str, list[Job]] = {}
        for child in children:
            by_parent.setdefault(child.parent_job_id or "", []).append(child)
        for parent in self._storage.list_jobs(session_id, states=NON_TERMINAL_JOB_STATES):
            if parent.parent_job_id is not None:
                continue
            pages = by_parent.get(parent.job_id, [])
            failed = [page for page in pages if page.state != JobState.COMPLETED]
            if failed:
                self._storage.update_job_state(
                    parent.job_id,
                    JobState.FAILED,
                    error=f"{len(failed)} of {len(pages)} pages failed",
                )
            else:
                self._storage.update_job_state(parent.job_id, JobState.COMPLETED)

    def _get_session(self, session_id: str) -> Session:
        session = self._storage.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def _job_state(self, job_id: str) -> JobState:
        job = self._storage.get_job(job_id)
        return job.state if job is not None else JobState.FAILED
