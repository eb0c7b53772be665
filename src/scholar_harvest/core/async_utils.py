"""
Async Utilities for the acquisition pipeline.

Python 3.12+ features used:
- asyncio.TaskGroup for structured concurrency (3.11+)
- Type parameter syntax for generic functions

Provides:
- Injectable clock / sleep types so timing behaviour is testable
- Cooldown circuit breaker
- Parallel execution with TaskGroup, bounded by a semaphore
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


def monotonic_clock() -> float:
    return time.monotonic()


# =============================================================================
# Circuit Breaker Pattern
# =============================================================================

@dataclass
class CooldownBreaker:
    """
    Circuit breaker that opens after ``failure_threshold`` consecutive
    failures and closes by itself once ``cooldown`` seconds have elapsed.

    States:
    - CLOSED: Normal operation
    - OPEN: Failing, callers should short-circuit until the cooldown elapses

    Example:
        breaker = CooldownBreaker(name="semantic_scholar", cooldown=15.0)
        if breaker.is_open:
            return []
        ...
        breaker.trip()
    """
    name: str
    cooldown: float = 15.0
    failure_threshold: int = 1
    clock: Clock = monotonic_clock

    _failure_count: int = field(init=False, default=0)
    _tripped_at: float | None = field(init=False, default=None)

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (rejecting requests)."""
        if self._tripped_at is None:
            return False
        if self.clock() - self._tripped_at >= self.cooldown:
            self.reset()
            logger.info(f"Circuit breaker '{self.name}' closed (cooldown elapsed)")
            return False
        return True

    @property
    def tripped_at(self) -> float | None:
        return self._tripped_at

    def remaining(self) -> float:
        """Seconds until the breaker closes again (0 when closed)."""
        if not self.is_open or self._tripped_at is None:
            return 0.0
        return max(0.0, self.cooldown - (self.clock() - self._tripped_at))

    def trip(self) -> None:
        """Open the breaker immediately."""
        self._tripped_at = self.clock()
        self._failure_count = max(self._failure_count, self.failure_threshold)
        logger.warning(f"Circuit breaker '{self.name}' opened for {self.cooldown:.0f}s")

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._failure_count >= self.failure_threshold and self._tripped_at is None:
            self.trip()

    def record_success(self) -> None:
        if self._tripped_at is None:
            self._failure_count = 0

    def reset(self) -> None:
        self._failure_count = 0
        self._tripped_at = None


# =============================================================================
# Parallel Execution with TaskGroup (Python 3.11+)
# =============================================================================

async def gather_with_errors(
    *coros: Awaitable[T],
    return_exceptions: bool = False,
) -> list[T | Exception]:
    """
    Execute coroutines in parallel using TaskGroup.

    Results keep the order of ``coros``. With ``return_exceptions`` every
    ``Exception`` is returned in place of its result; cancellation still
    propagates.

    Example:
        results = await gather_with_errors(
            pipeline.enrich(url_a),
            pipeline.enrich(url_b),
            return_exceptions=True,
        )
    """
    results: list[T | Exception | None] = [None] * len(coros)

    if return_exceptions:
        async def safe_run(coro: Awaitable[T], index: int) -> None:
            try:
                results[index] = await coro
            except Exception as e:
                results[index] = e

        async with asyncio.TaskGroup() as tg:
            for i, coro in enumerate(coros):
                tg.create_task(safe_run(coro, i))
    else:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(coro) for coro in coros]
        results = [task.result() for task in tasks]

    return results  # type: ignore[return-value]


async def bounded_map(
    items: Sequence[T],
    processor: Callable[[T], Awaitable[R]],
    concurrency: int = 3,
) -> list[R | Exception]:
    """
    Run ``processor`` over ``items`` with at most ``concurrency`` in flight.

    Failures are returned in place so one item never aborts the batch.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run(item: T) -> R:
        async with semaphore:
            return await processor(item)

    return await gather_with_errors(*[run(item) for item in items], return_exceptions=True)
