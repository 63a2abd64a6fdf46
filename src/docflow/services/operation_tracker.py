from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Sequence

from docflow.domain.errors import JobNotFoundError, PermanentError, TransientUpstreamError
from docflow.domain.models import JobState, OperationStatus
from docflow.ports.extraction_port import ExtractionPort
from docflow.ports.storage_port import StoragePort
from docflow.services.rate_limiter import TokenBucketRateLimiter
from docflow.services.time_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

POLLING_WINDOW_EXPIRED = "Polling window expired (24 hours)"
DEFAULT_BACKOFF_SCHEDULE = (2.0, 5.0, 13.0, 34.0)


class OperationTracker:
    """
    Drives long-running extraction operations to a terminal job state.

    The job record is the only durable state: ``start`` persists the
    operation id and polling start before the loop runs, so ``resume`` can
    rebuild the loop after a restart. At most one loop runs per job id.
    """

    def __init__(
        self,
        storage: StoragePort,
        extraction: ExtractionPort,
        rate_limiter: TokenBucketRateLimiter | None = None,
        min_delay: float = 2.0,
        backoff_schedule: Sequence[float] = DEFAULT_BACKOFF_SCHEDULE,
        max_polling: timedelta = timedelta(hours=24),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not backoff_schedule:
            raise ValueError("backoff_schedule must not be empty")
        self._storage = storage
        self._extraction = extraction
        self._rate_limiter = rate_limiter
        self._min_delay = min_delay
        self._backoff_schedule = tuple(backoff_schedule)
        self._max_polling = max_polling
        self._sleep = sleep
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[JobState]] = {}
        self._completion_listeners: list[Callable[[str], None]] = []

    def add_completion_listener(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(job_id)`` whenever a polling loop stores a COMPLETED result."""

        self._completion_listeners.append(listener)

    def start(self, job_id: str, operation_id: str) -> asyncio.Task[JobState]:
        existing = self._tasks.get(job_id)
        if existing is not None and not existing.done():
            logger.info("Polling already active", extra={"job_id": job_id})
            return existing
        started_at = self._clock()
        self._storage.start_job_polling(job_id, operation_id, started_at)
        logger.info(
            "Started polling", extra={"job_id": job_id, "operation_id": operation_id}
        )
        return self._spawn(job_id, operation_id, started_at, self._min_delay)

    def resume(self, job_id: str) -> asyncio.Task[JobState] | None:
        existing = self._tasks.get(job_id)
        if existing is not None and not existing.done():
            return existing
        job = self._storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        if job.state != JobState.POLLING or not job.operation_id:
            logger.info(
                "Job is not awaiting an operation",
                extra={"job_id": job_id, "state": job.state.value},
            )
            return None
        started_at = as_utc(job.polling_started_at or self._clock())
        if self._clock() - started_at > self._max_polling:
            self._storage.fail_job(job_id, POLLING_WINDOW_EXPIRED, self._clock())
            logger.warning(
                "Polling window expired before resume",
                extra={"job_id": job_id, "operation_id": job.operation_id},
            )
            return None
        logger.info(
            "Resuming polling", extra={"job_id": job_id, "operation_id": job.operation_id}
        )
        return self._spawn(job_id, job.operation_id, started_at, 0.0)

    def resume_all(self) -> int:
        """Resume every job left in POLLING by a previous process; returns how many loops run."""

        resumed = 0
        for job in self._storage.list_polling_jobs():
            if self.resume(job.job_id) is not None:
                resumed += 1
        if resumed:
            logger.info("Resumed polling loops", extra={"count": resumed})
        return resumed

    def is_tracking(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def tracked_job_ids(self) -> list[str]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def wait(self, job_id: str) -> JobState | None:
        task = self._tasks.get(job_id)
        if task is None:
            return None
        return await task

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def next_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Server-provided retry-after wins; otherwise walk the schedule and hold at its end."""

        if retry_after is not None:
            return retry_after
        index = min(attempt, len(self._backoff_schedule) - 1)
        return self._backoff_schedule[index]

    def _spawn(
        self, job_id: str, operation_id: str, started_at: datetime, first_delay: float
    ) -> asyncio.Task[JobState]:
        task = asyncio.get_running_loop().create_task(
            self._poll_loop(job_id, operation_id, started_at, first_delay),
            name=f"poll-{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda done: self._forget(job_id, done))
        return task

    def _forget(self, job_id: str, task: asyncio.Task[JobState]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def _poll_loop(
        self, job_id: str, operation_id: str, started_at: datetime, delay: float
    ) -> JobState:
        attempt = 0
        while True:
            if delay > 0:
                await self._sleep(delay)

            job = self._storage.get_job(job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")
            if job.is_terminal:
                return job.state

            now = self._clock()
            if now - started_at > self._max_polling:
                self._storage.fail_job(job_id, POLLING_WINDOW_EXPIRED, now)
                logger.warning(
                    "Polling window expired",
                    extra={"job_id": job_id, "operation_id": operation_id},
                )
                return self._final_state(job_id)

            if self._rate_limiter is not None:
                await self._rate_limiter.acquire()
            try:
                result = await self._extraction.poll(operation_id)
            except TransientUpstreamError as exc:
                delay = self.next_delay(attempt, exc.retry_after)
                attempt += 1
                logger.warning(
                    "Transient poll error, retrying",
                    extra={"job_id": job_id, "delay": delay, "error": str(exc)},
                )
                continue
            except PermanentError as exc:
                self._storage.fail_job(job_id, str(exc), self._clock())
                logger.error(
                    "Poll failed permanently", extra={"job_id": job_id, "error": str(exc)}
                )
                return self._final_state(job_id)
            self._storage.touch_job_polled(job_id, self._clock())

            if result.status == OperationStatus.SUCCEEDED:
                if self._storage.complete_job(job_id, result.fields or {}, self._clock()):
                    for listener in self._completion_listeners:
                        listener(job_id)
                logger.info("Operation succeeded", extra={"job_id": job_id})
                return self._final_state(job_id)
            if result.status == OperationStatus.FAILED:
                error = result.error or "Operation failed"
                self._storage.fail_job(job_id, error, self._clock())
                logger.warning("Operation failed", extra={"job_id": job_id, "error": error})
                return self._final_state(job_id)

            delay = self.next_delay(attempt, result.retry_after)
            attempt += 1
            logger.debug(
                "Operation still running", extra={"job_id": job_id, "delay": delay}
            )

    def _final_state(self, job_id: str) -> JobState:
        job = self._storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job.state
