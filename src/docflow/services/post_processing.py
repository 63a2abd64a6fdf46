from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from docflow.domain.errors import DocflowError, SessionNotFoundError
from docflow.domain.field_defaults import DefaultContext, apply_field_defaults
from docflow.domain.field_discovery import DEFAULT_RULES, FieldRule, discover_fields
from docflow.domain.field_transforms import apply_field_transforms
from docflow.domain.models import FieldConfig, Job, JobState, NamingElement, Owner, Session
from docflow.domain.naming import build_filename, resolve_collision
from docflow.domain.storage_paths import processed_path
from docflow.ports.object_store_port import ObjectStorePort
from docflow.ports.storage_port import StoragePort
from docflow.services.time_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class PostProcessSummary:
    renamed: int = 0
    skipped: int = 0
    failed: int = 0


class PostProcessingService:
    """
    Turns completed extraction results into renamed copies of the page documents.

    Runs are idempotent per job: a job that already carries a renamed
    reference is skipped and the record-store write is conditional, so a
    repeated run never produces a second artifact.
    """

    def __init__(
        self,
        storage: StoragePort,
        object_store: ObjectStorePort,
        rules: Iterable[FieldRule] = DEFAULT_RULES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._object_store = object_store
        self._rules = tuple(rules)
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    async def post_process_session(self, session_id: str) -> PostProcessSummary:
        session = self._storage.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            summary = await self._process_session(session)
        if summary.renamed:
            self._storage.increment_post_processed(session_id, summary.renamed)
        logger.info(
            "Post-processing finished",
            extra={
                "session_id": session_id,
                "count": summary.renamed,
                "status": f"renamed={summary.renamed} skipped={summary.skipped} failed={summary.failed}",
            },
        )
        return summary

    async def _process_session(self, session: Session) -> PostProcessSummary:
        summary = PostProcessSummary()
        owner = self._storage.get_owner(session.owner_id)
        configs = self._storage.get_field_configs(session.model_id)
        elements = self._storage.get_naming_elements(session.model_id)
        children = self._storage.list_jobs(session.session_id, children_only=True)
        used_names = {job.new_filename for job in children if job.new_filename}

        for job in children:
            if job.state != JobState.COMPLETED:
                continue
            if job.renamed_ref or job.new_filename:
                summary.skipped += 1
                continue
            try:
                new_filename = await self._rename_job(
                    session, job, owner, configs, elements, used_names
                )
            except DocflowError as exc:
                summary.failed += 1
                logger.warning(
                    "Post-processing failed for job",
                    extra={"session_id": session.session_id, "job_id": job.job_id, "error": str(exc)},
                )
                continue
            if new_filename is None:
                summary.skipped += 1
                continue
            used_names.add(new_filename)
            summary.renamed += 1
        return summary

    async def _rename_job(
        self,
        session: Session,
        job: Job,
        owner: Owner | None,
        configs: list[FieldConfig],
        elements: list[NamingElement],
        used_names: set[str],
    ) -> str | None:
        now = self._clock()
        fields = job.extracted_fields or {}
        if configs:
            updated = apply_field_defaults(fields, configs, DefaultContext(owner=owner, now=now))
            updated = apply_field_transforms(updated, configs)
            if updated != fields:
                self._storage.update_job_fields(job.job_id, updated)
                fields = updated

        discovered = discover_fields(fields, self._rules)
        new_filename = build_filename(fields, discovered, elements or None, today=now.date())
        new_filename = resolve_collision(new_filename, used_names)
        destination = processed_path(session.storage_prefix, new_filename)

        data = await self._object_store.get(job.source_ref)
        await self._object_store.put(
            destination,
            data,
            metadata={
                "session_id": session.session_id,
                "job_id": job.job_id,
                "original_name": job.file_name,
            },
        )
        if not self._storage.set_job_renamed(job.job_id, destination, new_filename):
            logger.info(
                "Job was already renamed", extra={"job_id": job.job_id, "path": destination}
            )
            return None
        logger.info(
            "Renamed job output",
            extra={"session_id": session.session_id, "job_id": job.job_id, "path": destination},
        )
        return new_filename
