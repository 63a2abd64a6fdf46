from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import PurePosixPath
from typing import Callable
from uuid import uuid4

from docflow.domain.errors import (
    DocflowError,
    InsufficientBalanceError,
    OwnerNotFoundError,
    SessionNotFoundError,
)
from docflow.domain.field_values import flatten_fields
from docflow.domain.models import (
    Job,
    JobResult,
    JobState,
    Owner,
    Session,
    SessionState,
    SessionStatus,
    UploadedDocument,
)
from docflow.domain.storage_paths import file_stem, original_path, page_path, session_prefix
from docflow.ports.object_store_port import ObjectStorePort
from docflow.ports.pdf_splitter_port import PdfSplitterPort
from docflow.ports.storage_port import StoragePort
from docflow.services.dispatcher import JobDispatcher
from docflow.services.operation_tracker import OperationTracker
from docflow.services.session_lifecycle import SessionLifecycleManager
from docflow.services.time_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class StartupReport:
    requeued_jobs: int = 0
    resumed_polls: int = 0
    scheduled_sessions: int = 0
    expired_sessions: int = 0
    redispatched_sessions: int = 0


class SessionService:
    """Entry point for batch submission, status queries and process lifecycle."""

    def __init__(
        self,
        storage: StoragePort,
        object_store: ObjectStorePort,
        splitter: PdfSplitterPort,
        dispatcher: JobDispatcher,
        tracker: OperationTracker,
        lifecycle: SessionLifecycleManager,
        model_id: str,
        retention: timedelta = timedelta(hours=24),
        unit_cost: int = 1,
        unmetered_owner_id: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._object_store = object_store
        self._splitter = splitter
        self._dispatcher = dispatcher
        self._tracker = tracker
        self._lifecycle = lifecycle
        self._model_id = model_id
        self._retention = retention
        self._unit_cost = unit_cost
        self._unmetered_owner_id = unmetered_owner_id
        self._clock = clock
        self._dispatches: dict[str, asyncio.Task[Session]] = {}

    def register_owner(self, owner: Owner) -> Owner:
        self._storage.save_owner(owner)
        return owner

    async def create_session(
        self,
        owner_id: str,
        documents: list[UploadedDocument],
        model_id: str | None = None,
    ) -> Session:
        """
        Store the uploaded PDFs, split them into pages and queue one job per page.

        Raises ``OwnerNotFoundError`` for unknown owners and
        ``InsufficientBalanceError`` when the owner cannot pay for every page.
        """
        if not documents:
            raise ValueError("At least one document is required")
        owner = self._storage.get_owner(owner_id)
        if owner is None:
            raise OwnerNotFoundError(f"Owner not found: {owner_id}")

        pages_by_document = [self._splitter.split(document.data) for document in documents]
        total_pages = sum(len(pages) for pages in pages_by_document)
        if owner_id != self._unmetered_owner_id:
            required = total_pages * self._unit_cost
            if owner.balance < required:
                raise InsufficientBalanceError(required=required, available=owner.balance)

        now = self._clock()
        session_id = str(uuid4())
        prefix = session_prefix(owner_id, session_id)
        session = Session(
            session_id=session_id,
            owner_id=owner_id,
            state=SessionState.UPLOADING,
            storage_prefix=prefix,
            model_id=model_id or self._model_id,
            created_at=now,
            expires_at=now + self._retention,
        )
        self._storage.create_session(session)
        self._lifecycle.schedule_expiry(session_id, session.expires_at)
        logger.info(
            "Created session",
            extra={"session_id": session_id, "owner_id": owner_id, "count": total_pages},
        )

        try:
            jobs = await self._upload(session, documents, pages_by_document)
        except DocflowError:
            self._storage.update_session_state(session_id, SessionState.FAILED)
            logger.exception("Upload failed", extra={"session_id": session_id})
            raise
        self._storage.create_jobs(jobs)
        self._storage.set_session_totals(session_id, len(documents), total_pages)
        self._storage.update_session_state(session_id, SessionState.PROCESSING)
        return self._get_session(session_id)

    def enqueue_session(self, session_id: str) -> asyncio.Task[Session]:
        """Start dispatching the session in the background; reuses a running dispatch."""

        existing = self._dispatches.get(session_id)
        if existing is not None and not existing.done():
            return existing
        self._get_session(session_id)
        task = asyncio.get_running_loop().create_task(
            self._dispatcher.dispatch_session(session_id), name=f"dispatch-{session_id}"
        )
        self._dispatches[session_id] = task
        task.add_done_callback(lambda done: self._on_dispatch_done(session_id, done))
        return task

    def get_session_status(self, session_id: str) -> SessionStatus:
        session = self._get_session(session_id)
        return SessionStatus(
            state=session.state,
            processed_count=session.processed_pages,
            total_count=session.total_pages,
        )

    def get_job_results(self, session_id: str) -> list[JobResult]:
        self._get_session(session_id)
        jobs = self._storage.list_jobs(
            session_id, states=[JobState.COMPLETED], children_only=True
        )
        return [
            JobResult(
                file_name=job.file_name,
                fields=flatten_fields(job.extracted_fields),
                new_file_name=job.new_filename,
            )
            for job in jobs
        ]

    async def expedite_expiry(self, session_id: str, new_expires_at: datetime) -> Session:
        return await self._lifecycle.expedite_expiry(session_id, new_expires_at)

    async def startup(self) -> StartupReport:
        """Rebuild in-memory work from the record store after a restart."""

        report = StartupReport()
        report.scheduled_sessions, report.expired_sessions = await self._lifecycle.reconcile()

        for job in self._storage.list_jobs(states=[JobState.PROCESSING], children_only=True):
            if job.operation_id:
                continue
            if self._storage.update_job_state(job.job_id, JobState.QUEUED):
                report.requeued_jobs += 1

        report.resumed_polls = self._tracker.resume_all()

        for session in self._storage.list_sessions(
            states=[SessionState.PROCESSING, SessionState.POST_PROCESSING]
        ):
            self.enqueue_session(session.session_id)
            report.redispatched_sessions += 1

        logger.info(
            "Startup reconciliation finished",
            extra={"status": str(report)},
        )
        return report

    async def shutdown(self) -> None:
        self._lifecycle.cancel_all()
        dispatches = list(self._dispatches.values())
        for task in dispatches:
            task.cancel()
        await asyncio.gather(*dispatches, return_exceptions=True)
        self._dispatches.clear()
        await self._tracker.shutdown()

    async def _upload(
        self,
        session: Session,
        documents: list[UploadedDocument],
        pages_by_document: list[list[bytes]],
    ) -> list[Job]:
        jobs: list[Job] = []
        now = self._clock()
        for document, pages in zip(documents, pages_by_document):
            file_name = PurePosixPath(document.file_name).name or "document.pdf"
            unique_name = f"{uuid4().hex[:8]}_{file_name}"
            original_ref = await self._object_store.put(
                original_path(session.storage_prefix, unique_name),
                document.data,
                metadata={
                    "session_id": session.session_id,
                    "original_name": file_name,
                    "content_type": document.content_type,
                },
            )
            parent = Job(
                job_id=str(uuid4()),
                session_id=session.session_id,
                state=JobState.QUEUED,
                file_name=file_name,
                source_ref=original_ref,
                created_at=now,
            )
            jobs.append(parent)
            stem = file_stem(unique_name)
            for page_number, page in enumerate(pages, start=1):
                page_ref = await self._object_store.put(
                    page_path(session.storage_prefix, stem, page_number),
                    page,
                    metadata={"session_id": session.session_id, "parent_job_id": parent.job_id},
                )
                jobs.append(
                    Job(
                        job_id=str(uuid4()),
                        session_id=session.session_id,
                        state=JobState.QUEUED,
                        file_name=f"{file_stem(file_name)}_page_{page_number}.pdf",
                        source_ref=page_ref,
                        created_at=now,
                        parent_job_id=parent.job_id,
                        page_number=page_number,
                    )
                )
        return jobs

    def _on_dispatch_done(self, session_id: str, task: asyncio.Task[Session]) -> None:
        if self._dispatches.get(session_id) is task:
            del self._dispatches[session_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session dispatch failed", exc_info=exc, extra={"session_id": session_id})

    def _get_session(self, session_id: str) -> Session:
        session = self._storage.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session
