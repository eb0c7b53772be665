"""Tests for async_utils.py: CooldownBreaker, gather_with_errors, bounded_map."""

from __future__ import annotations

import asyncio

import pytest

from scholar_harvest.core.async_utils import CooldownBreaker, bounded_map, gather_with_errors

# ============================================================
# CooldownBreaker
# ============================================================


class TestCooldownBreaker:
    def test_starts_closed(self, fake_clock):
        breaker = CooldownBreaker("s2", cooldown=15.0, clock=fake_clock)
        assert not breaker.is_open
        assert breaker.remaining() == 0.0

    def test_trip_opens_until_cooldown(self, fake_clock):
        breaker = CooldownBreaker("s2", cooldown=15.0, clock=fake_clock)
        breaker.trip()
        assert breaker.is_open
        fake_clock.advance(14.9)
        assert breaker.is_open
        assert breaker.remaining() == pytest.approx(0.1)
        fake_clock.advance(1.0)
        assert not breaker.is_open
        assert breaker.tripped_at is None

    def test_threshold(self, fake_clock):
        breaker = CooldownBreaker("host", cooldown=120.0, failure_threshold=3, clock=fake_clock)
        breaker.record_failure()
        breaker.record_failure()
        assert not breaker.is_open
        breaker.record_failure()
        assert breaker.is_open

    def test_success_resets_consecutive_count(self, fake_clock):
        breaker = CooldownBreaker("host", failure_threshold=3, clock=fake_clock)
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert not breaker.is_open

    def test_reset(self, fake_clock):
        breaker = CooldownBreaker("s2", clock=fake_clock)
        breaker.trip()
        breaker.reset()
        assert not breaker.is_open


# ============================================================
# gather_with_errors
# ============================================================


class TestGatherWithErrors:
    async def test_preserves_order(self):
        async def delayed(value: int, delay: float) -> int:
            await asyncio.sleep(delay)
            return value

        results = await gather_with_errors(delayed(1, 0.02), delayed(2, 0.0), delayed(3, 0.01))
        assert results == [1, 2, 3]

    async def test_return_exceptions(self):
        async def ok() -> str:
            return "ok"

        async def fail() -> str:
            raise ValueError("boom")

        results = await gather_with_errors(ok(), fail(), return_exceptions=True)
        assert results[0] == "ok"
        assert isinstance(results[1], ValueError)

    async def test_raises_without_return_exceptions(self):
        async def fail() -> None:
            raise ValueError("boom")

        with pytest.raises(ExceptionGroup):
            await gather_with_errors(fail())


# ============================================================
# bounded_map
# ============================================================


class TestBoundedMap:
    async def test_concurrency_limit(self):
        active = 0
        peak = 0

        async def work(item: int) -> int:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return item * 2

        results = await bounded_map(list(range(8)), work, concurrency=2)
        assert results == [0, 2, 4, 6, 8, 10, 12, 14]
        assert peak <= 2

    async def test_failures_in_place(self):
        async def work(item: int) -> int:
            if item == 1:
                raise RuntimeError("item failed")
            return item

        results = await bounded_map([0, 1, 2], work)
        assert results[0] == 0
        assert isinstance(results[1], RuntimeError)
        assert results[2] == 2
