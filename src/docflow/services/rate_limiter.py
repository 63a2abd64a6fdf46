from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable

from docflow.domain.tiers import TierConfig

logger = logging.getLogger(__name__)


class TokenBucketRateLimiter:
    """
    Admission gate for calls into the extraction service.

    A bucket of ``max_tokens`` refills continuously at ``refill_rate`` tokens
    per second. Admissions are additionally capped at ``max_tokens`` per
    ``max_tokens / refill_rate`` seconds (one second for the tier presets), so
    a full bucket followed by refill can never exceed the tier rate inside any
    window. Waiters are served strictly in arrival order; ``acquire`` never
    rejects, it only delays. State is only touched from the event loop.
    """

    def __init__(
        self,
        max_tokens: int,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")
        self.max_tokens = max_tokens
        self.refill_rate = refill_rate
        self.window = max_tokens / refill_rate
        self._clock = clock
        self._tokens = float(max_tokens)
        self._last_refill = clock()
        self._admissions: deque[float] = deque()
        self._waiters: deque[asyncio.Future[float]] = deque()
        self._wakeup: asyncio.TimerHandle | None = None
        self._total_admitted = 0

    @classmethod
    def from_tier(cls, tier: TierConfig) -> TokenBucketRateLimiter:
        return cls(max_tokens=tier.max_tokens, refill_rate=tier.refill_rate)

    def try_acquire(self) -> bool:
        """Take a token if one is free right now and nobody is queued ahead."""

        if self._waiters:
            return False
        now = self._clock()
        if not self._available(now):
            return False
        self._admit(now)
        return True

    async def acquire(self) -> None:
        if self.try_acquire():
            return
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[float] = loop.create_future()
        self._waiters.append(waiter)
        logger.debug("Waiting for rate limit token", extra={"queue_length": len(self._waiters)})
        self._schedule_wakeup()
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            elif waiter.done() and not waiter.cancelled():
                self._refund(waiter.result())
            self._schedule_wakeup()
            raise

    def stats(self) -> dict[str, float | int]:
        now = self._clock()
        self._refill(now)
        self._prune(now)
        return {
            "available_tokens": round(self._tokens, 3),
            "max_tokens": self.max_tokens,
            "refill_rate": self.refill_rate,
            "queue_length": len(self._waiters),
            "total_admitted": self._total_admitted,
        }

    @property
    def queue_length(self) -> int:
        return len(self._waiters)

    def _available(self, now: float) -> bool:
        self._refill(now)
        self._prune(now)
        return self._tokens >= 1.0 and len(self._admissions) < self.max_tokens

    def _admit(self, now: float) -> float:
        self._tokens -= 1.0
        self._admissions.append(now)
        self._total_admitted += 1
        return now

    def _refund(self, admitted_at: float) -> None:
        self._tokens = min(float(self.max_tokens), self._tokens + 1.0)
        if admitted_at in self._admissions:
            self._admissions.remove(admitted_at)
        self._total_admitted -= 1

    def _refill(self, now: float) -> None:
        elapsed = max(now - self._last_refill, 0.0)
        self._tokens = min(float(self.max_tokens), self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def _prune(self, now: float) -> None:
        while self._admissions and now - self._admissions[0] >= self.window:
            self._admissions.popleft()

    def _delay_until_available(self, now: float) -> float:
        token_delay = max(1.0 - self._tokens, 0.0) / self.refill_rate
        window_delay = 0.0
        if len(self._admissions) >= self.max_tokens:
            window_delay = self._admissions[0] + self.window - now
        return max(token_delay, window_delay, 0.0)

    def _schedule_wakeup(self) -> None:
        if self._wakeup is not None or not self._waiters:
            return
        now = self._clock()
        self._available(now)
        delay = self._delay_until_available(now)
        loop = asyncio.get_running_loop()
        self._wakeup = loop.call_later(delay, self._wake)

    def _wake(self) -> None:
        self._wakeup = None
        while self._waiters:
            head = self._waiters[0]
            if head.done():
                self._waiters.popleft()
                continue
            now = self._clock()
            if not self._available(now):
                break
            self._waiters.popleft()
            head.set_result(self._admit(now))
        self._schedule_wakeup()


class BackoffTracker:
    """Exponential backoff driven by consecutive downstream failures."""

    def __init__(
        self,
        min_backoff: float = 0.1,
        max_backoff: float = 60.0,
        multiplier: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self.multiplier = multiplier
        self._sleep = sleep
        self._current = min_backoff
        self._consecutive_failures = 0

    @property
    def current(self) -> float:
        return self._current

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def report_failure(self) -> float:
        self._consecutive_failures += 1
        self._current = min(self.max_backoff, self._current * self.multiplier)
        logger.warning(
            "Extraction service failure reported",
            extra={"attempt": self._consecutive_failures, "delay": self._current},
        )
        return self._current

    def report_success(self) -> None:
        self._consecutive_failures = 0
        self._current = self.min_backoff

    async def wait(self, at_least: float | None = None) -> float:
        """Sleep for the current backoff (or ``at_least``, if longer), then grow it."""

        delay = max(self._current, at_least or 0.0)
        await self._sleep(delay)
        self.report_failure()
        return delay
