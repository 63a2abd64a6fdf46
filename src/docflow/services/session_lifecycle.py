from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable
from uuid import uuid4

from docflow.domain.errors import (
    DocflowError,
    SafetyViolationError,
    SessionNotFoundError,
    StorageError,
)
from docflow.domain.models import AuditEvent, CleanupLog, Session, SessionState
from docflow.domain.storage_paths import ensure_session_scoped
from docflow.ports.object_store_port import ObjectStorePort
from docflow.ports.storage_port import StoragePort
from docflow.services.time_utils import as_utc, seconds_until, utc_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
ACTIVE_SESSION_STATES = tuple(state for state in SessionState if state != SessionState.EXPIRED)


@dataclass
class _ExpiryOutcome:
    jobs_expired: int = 0
    blobs_deleted: int = 0
    errors: list[str] = field(default_factory=list)
    log: CleanupLog | None = None


class SessionLifecycleManager:
    """
    Owns session retention: one expiry timer per session and the only path
    that deletes session artifacts.

    Deletion is gated on the stored prefix being confined to the session;
    a prefix that fails the check raises ``SafetyViolationError`` before any
    object is touched and leaves the session active.
    """

    def __init__(
        self,
        storage: StoragePort,
        object_store: ObjectStorePort,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._storage = storage
        self._object_store = object_store
        self._clock = clock
        self._sleep = sleep
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._running: dict[str, asyncio.Task[_ExpiryOutcome | None]] = {}
        self._background: set[asyncio.Task] = set()

    def schedule_expiry(self, session_id: str, expires_at: datetime) -> None:
        self.cancel_expiry(session_id)
        delay = seconds_until(expires_at, self._clock())
        if delay <= 0:
            logger.info("Session already past expiry", extra={"session_id": session_id})
            self._trigger(session_id)
            return
        loop = asyncio.get_running_loop()
        self._timers[session_id] = loop.call_later(delay, self._on_timer, session_id)
        logger.debug("Scheduled session expiry", extra={"session_id": session_id, "delay": delay})

    def cancel_expiry(self, session_id: str) -> bool:
        handle = self._timers.pop(session_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_scheduled(self, session_id: str) -> bool:
        return session_id in self._timers

    async def expire_session(
        self, session_id: str, performed_by: str = SYSTEM_ACTOR
    ) -> CleanupLog | None:
        """
        Delete the session's artifacts, expire its jobs and the session, and log the run.

        Returns None when the session was already expired. Concurrent calls
        for the same session share one run; a run started by a sweep is only
        recorded in the sweep's aggregated log, so joining it returns None.
        """
        outcome = await self._shared_run(session_id, performed_by, record_log=True)
        return outcome.log if outcome is not None else None

    async def reconcile(self) -> tuple[int, int]:
        """Re-arm timers for live sessions and expire the ones already past due."""

        scheduled = 0
        expired = 0
        now = self._clock()
        for session in self._storage.list_sessions(states=ACTIVE_SESSION_STATES):
            if as_utc(session.expires_at) > now:
                self.schedule_expiry(session.session_id, session.expires_at)
                scheduled += 1
                continue
            try:
                log = await self.expire_session(session.session_id, SYSTEM_ACTOR)
            except SafetyViolationError:
                continue
            if log is not None:
                expired += 1
        logger.info(
            "Reconciled session expiry",
            extra={"count": scheduled, "status": f"scheduled={scheduled} expired={expired}"},
        )
        return scheduled, expired

    async def expedite_expiry(self, session_id: str, new_expires_at: datetime) -> Session:
        session = self._storage.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        if session.state == SessionState.EXPIRED:
            return session
        self._storage.update_session_expiry(session_id, new_expires_at)
        self.schedule_expiry(session_id, new_expires_at)
        logger.info(
            "Expedited session expiry",
            extra={"session_id": session_id, "delay": seconds_until(new_expires_at, self._clock())},
        )
        return self._storage.get_session(session_id) or session

    async def sweep_expired(self, performed_by: str = SYSTEM_ACTOR) -> CleanupLog:
        """Expire every past-due session and record one aggregated cleanup log."""

        started_at = self._clock()
        totals = _ExpiryOutcome()
        sessions_processed = 0
        sessions_expired = 0
        for session in self._storage.list_sessions(states=ACTIVE_SESSION_STATES):
            if as_utc(session.expires_at) > started_at:
                continue
            sessions_processed += 1
            try:
                outcome = await self._shared_run(
                    session.session_id, performed_by, record_log=False
                )
            except DocflowError as exc:
                totals.errors.append(f"{session.session_id}: {exc}")
                continue
            if outcome is None:
                continue
            sessions_expired += 1
            if outcome.log is not None:
                continue
            totals.jobs_expired += outcome.jobs_expired
            totals.blobs_deleted += outcome.blobs_deleted
            totals.errors.extend(outcome.errors)

        log = CleanupLog(
            log_id=str(uuid4()),
            started_at=started_at,
            completed_at=self._clock(),
            sessions_processed=sessions_processed,
            sessions_expired=sessions_expired,
            jobs_expired=totals.jobs_expired,
            blobs_deleted=totals.blobs_deleted,
            errors=totals.errors,
        )
        self._storage.save_cleanup_log(log)
        logger.info(
            "Cleanup sweep finished",
            extra={"count": sessions_expired, "status": log.status},
        )
        return log

    async def run_periodic_sweep(self, interval_seconds: float) -> None:
        while True:
            try:
                await self.sweep_expired()
            except StorageError:
                logger.exception("Cleanup sweep failed")
            await self._sleep(interval_seconds)

    def cancel_all(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in list(self._background) + list(self._running.values()):
            task.cancel()

    def _on_timer(self, session_id: str) -> None:
        self._timers.pop(session_id, None)
        self._trigger(session_id)

    def _trigger(self, session_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self.expire_session(session_id))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, SafetyViolationError):
            logger.error("Scheduled session expiry failed", exc_info=exc)

    def _forget_run(self, session_id: str, task: asyncio.Task) -> None:
        if self._running.get(session_id) is task:
            del self._running[session_id]

    async def _shared_run(
        self, session_id: str, performed_by: str, record_log: bool
    ) -> _ExpiryOutcome | None:
        running = self._running.get(session_id)
        if running is None or running.done():
            running = asyncio.get_running_loop().create_task(
                self._run_expiry(session_id, performed_by, record_log),
                name=f"expire-{session_id}",
            )
            self._running[session_id] = running
            running.add_done_callback(lambda done: self._forget_run(session_id, done))
        return await asyncio.shield(running)

    async def _run_expiry(
        self, session_id: str, performed_by: str, record_log: bool
    ) -> _ExpiryOutcome | None:
        started_at = self._clock()
        outcome = await self._expire(session_id, performed_by)
        if outcome is None or not record_log:
            return outcome
        outcome.log = CleanupLog(
            log_id=str(uuid4()),
            started_at=started_at,
            completed_at=self._clock(),
            sessions_processed=1,
            sessions_expired=1,
            jobs_expired=outcome.jobs_expired,
            blobs_deleted=outcome.blobs_deleted,
            errors=outcome.errors,
        )
        self._storage.save_cleanup_log(outcome.log)
        return outcome

    async def _expire(self, session_id: str, performed_by: str) -> _ExpiryOutcome | None:
        self.cancel_expiry(session_id)
        session = self._storage.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        if session.state == SessionState.EXPIRED:
            logger.info("Session already expired", extra={"session_id": session_id})
            return None

        try:
            prefix = ensure_session_scoped(session_id, session.storage_prefix)
        except SafetyViolationError as exc:
            logger.error(
                "Refusing to delete session artifacts",
                extra={"session_id": session_id, "prefix": session.storage_prefix, "error": str(exc)},
            )
            self._audit("SESSION_CLEANUP_BLOCKED", session_id, performed_by, {"error": str(exc)})
            raise

        outcome = _ExpiryOutcome()
        for path in await self._object_store.list_by_prefix(prefix):
            if not path.startswith(prefix):
                outcome.errors.append(f"Listed path outside session prefix: {path}")
                logger.error(
                    "Listed path outside session prefix",
                    extra={"session_id": session_id, "path": path},
                )
                continue
            try:
                if await self._object_store.delete(path):
                    outcome.blobs_deleted += 1
            except StorageError as exc:
                outcome.errors.append(f"{path}: {exc}")
                logger.warning(
                    "Failed to delete artifact",
                    extra={"session_id": session_id, "path": path, "error": str(exc)},
                )

        outcome.jobs_expired = self._storage.expire_session_jobs(session_id)
        self._storage.update_session_state(session_id, SessionState.EXPIRED)
        self._audit(
            "SESSION_EXPIRED",
            session_id,
            performed_by,
            {
                "blobs_deleted": outcome.blobs_deleted,
                "jobs_expired": outcome.jobs_expired,
                "errors": len(outcome.errors),
            },
        )
        logger.info(
            "Session expired",
            extra={
                "session_id": session_id,
                "performed_by": performed_by,
                "count": outcome.blobs_deleted,
            },
        )
        return outcome

    def _audit(self, event_type: str, session_id: str, performed_by: str, details: dict) -> None:
        self._storage.add_audit_event(
            AuditEvent(
                event_id=str(uuid4()),
                event_type=event_type,
                session_id=session_id,
                performed_by=performed_by,
                created_at=self._clock(),
                details=details,
            )
        )
