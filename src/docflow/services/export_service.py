from __future__ import annotations

import logging
import zipfile
from datetime import datetime, timedelta
from io import BytesIO
from pathlib import PurePosixPath
from typing import Callable

from docflow.domain.errors import DocflowError, NothingToExportError, SessionNotFoundError
from docflow.domain.models import Job, JobState, Session, SessionExport, SessionState
from docflow.domain.report_rendering import (
    REPORT_FILE_NAME,
    REPORT_FIXED_HEADERS,
    REPORT_SHEET_TITLE,
    archive_member_name,
    report_columns,
    report_rows,
)
from docflow.domain.storage_paths import ensure_session_scoped, export_path
from docflow.ports.object_store_port import ObjectStorePort
from docflow.ports.report_writer_port import ReportWriterPort
from docflow.ports.storage_port import StoragePort
from docflow.services.time_utils import utc_now

logger = logging.getLogger(__name__)

ARCHIVE_PDF_FOLDER = "pdfs"


class SessionExportService:
    """
    Packages a session's results for download.

    The archive holds every completed page document (the renamed copy when
    there is one, else the page itself) under ``pdfs/`` plus the extraction
    report. It is stored under the session's own prefix, so session expiry
    removes it with everything else.
    """

    def __init__(
        self,
        storage: StoragePort,
        object_store: ObjectStorePort,
        report_writer: ReportWriterPort,
        url_ttl_seconds: int = 86400,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._object_store = object_store
        self._report_writer = report_writer
        self._url_ttl_seconds = url_ttl_seconds
        self._clock = clock

    def build_report(self, session_id: str) -> bytes:
        session = self._get_session(session_id)
        return self._render_report(session, self._completed_jobs(session))

    async def export_session(self, session_id: str) -> SessionExport:
        session = self._get_session(session_id)
        jobs = self._completed_jobs(session)
        prefix = ensure_session_scoped(session_id, session.storage_prefix)

        buffer = BytesIO()
        used_names: set[str] = set()
        file_count = 0
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for job in jobs:
                source_ref = job.renamed_ref or job.source_ref
                try:
                    data = await self._object_store.get(source_ref)
                except DocflowError as exc:
                    logger.warning(
                        "Skipping document missing from export",
                        extra={"session_id": session_id, "job_id": job.job_id, "error": str(exc)},
                    )
                    continue
                preferred = (job.new_filename if job.renamed_ref else None) or job.file_name
                member = archive_member_name(
                    preferred or PurePosixPath(source_ref).name, used_names
                )
                used_names.add(member)
                archive.writestr(f"{ARCHIVE_PDF_FOLDER}/{member}", data)
                file_count += 1
            archive.writestr(REPORT_FILE_NAME, self._render_report(session, jobs))

        now = self._clock()
        path = export_path(prefix, session_id, now.strftime("%Y%m%dT%H%M%S%f"))
        ref = await self._object_store.put(
            path,
            buffer.getvalue(),
            metadata={"session_id": session_id, "content_type": "application/zip"},
        )
        access_url = await self._object_store.generate_access_url(ref, self._url_ttl_seconds)
        logger.info(
            "Exported session",
            extra={"session_id": session_id, "count": file_count, "path": ref},
        )
        return SessionExport(
            path=ref,
            access_url=access_url,
            expires_at=now + timedelta(seconds=self._url_ttl_seconds),
            file_count=file_count,
            row_count=len(jobs),
        )

    def _render_report(self, session: Session, jobs: list[Job]) -> bytes:
        settings = self._storage.get_report_settings(session.model_id)
        columns = report_columns(jobs, settings)
        headers = [*REPORT_FIXED_HEADERS, *(header for _, header in columns)]
        return self._report_writer.render(
            REPORT_SHEET_TITLE, headers, report_rows(jobs, columns, settings)
        )

    def _completed_jobs(self, session: Session) -> list[Job]:
        if session.state == SessionState.EXPIRED:
            raise NothingToExportError(f"Session expired: {session.session_id}")
        jobs = self._storage.list_jobs(
            session.session_id, states=[JobState.COMPLETED], children_only=True
        )
        if not jobs:
            raise NothingToExportError(f"No completed jobs in session: {session.session_id}")
        return jobs

    def _get_session(self, session_id: str) -> Session:
        session = self._storage.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session
