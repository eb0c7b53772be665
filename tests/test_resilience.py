"""Tests for ResilienceState."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from scholar_harvest.core.config import HarvestSettings
from scholar_harvest.core.resilience import ResilienceState


class TestProviderBreakers:
    def test_same_breaker_per_provider(self, resilience):
        assert resilience.provider_breaker("semantic_scholar") is resilience.provider_breaker("semantic_scholar")

    def test_reset_provider(self, resilience):
        resilience.provider_breaker("semantic_scholar").trip()
        resilience.reset_provider("semantic_scholar")
        assert not resilience.provider_breaker("semantic_scholar").is_open

    def test_instances_are_isolated(self, fake_clock):
        a = ResilienceState(clock=fake_clock)
        b = ResilienceState(clock=fake_clock)
        a.provider_breaker("semantic_scholar").trip()
        assert not b.provider_breaker("semantic_scholar").is_open

    def test_from_settings(self, fake_clock):
        state = ResilienceState.from_settings(
            HarvestSettings(primary_breaker_cooldown=7.0, processing_breaker_threshold=2),
            clock=fake_clock,
        )
        breaker = state.provider_breaker("semantic_scholar")
        assert breaker.cooldown == 7.0
        assert state.host_breaker("example.org").failure_threshold == 2


class TestHostBreakers:
    def test_trips_after_threshold(self, resilience, fake_clock):
        breaker = resilience.host_breaker("www.semanticscholar.org")
        for _ in range(3):
            breaker.record_failure()
        assert breaker.is_open
        fake_clock.advance(121)
        assert not breaker.is_open


class TestClaimFetch:
    async def test_cooldown_window(self, resilience, fake_clock):
        url = "https://example.org/paper"
        assert await resilience.claim_fetch(url)
        assert not await resilience.claim_fetch(url)
        fake_clock.advance(29)
        assert not await resilience.claim_fetch(url)
        fake_clock.advance(2)
        assert await resilience.claim_fetch(url)

    async def test_urls_independent(self, resilience):
        assert await resilience.claim_fetch("https://example.org/a")
        assert await resilience.claim_fetch("https://example.org/b")

    async def test_concurrent_claims_single_winner(self, resilience):
        results = await asyncio.gather(*[resilience.claim_fetch("https://example.org/x") for _ in range(5)])
        assert results.count(True) == 1


class TestBlockList:
    async def test_memory_only(self, resilience):
        url = "https://publisher.example/paper"
        assert not await resilience.is_blocked(url)
        await resilience.block_url(url, "HTTP 403")
        assert await resilience.is_blocked(url)
        assert resilience.blocked_reason(url) == "HTTP 403"

    async def test_persists_to_store(self, fake_clock):
        store = MagicMock()
        store.is_blocked = AsyncMock(return_value=False)
        store.block_url = AsyncMock()
        state = ResilienceState(store=store, clock=fake_clock)

        await state.block_url("https://publisher.example/paper", "HTTP 429")
        await state.block_url("https://publisher.example/paper", "HTTP 429")

        store.block_url.assert_awaited_once_with("https://publisher.example/paper", "HTTP 429")

    async def test_consults_store(self, fake_clock):
        store = MagicMock()
        store.is_blocked = AsyncMock(return_value=True)
        state = ResilienceState(store=store, clock=fake_clock)

        assert await state.is_blocked("https://blocked-last-week.example")
        store.is_blocked.assert_awaited_once()
