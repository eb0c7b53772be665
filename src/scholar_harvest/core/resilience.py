"""
ResilienceState - the only state shared between concurrent pipeline operations.

Holds:
- one cooldown breaker per search provider
- one 202 ("processing") breaker per host
- the per-URL last-fetch map used by abstract enrichment
- the block-list, mirrored in memory and delegated to the persistence store

Create one per orchestration run, or share one explicitly (the container
does) when the provider breakers should be process-wide. Tests build
isolated instances with a fake clock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .async_utils import Clock, CooldownBreaker, monotonic_clock

if TYPE_CHECKING:
    from scholar_harvest.core.config import HarvestSettings
    from scholar_harvest.infrastructure.persistence.store import JsonFileStore

logger = logging.getLogger(__name__)

# Prune the last-fetch map once it grows past this many entries
_FETCH_MAP_PRUNE_SIZE = 1024


class ResilienceState:
    """Breakers, cooldowns and the block-list for one pipeline scope."""

    def __init__(
        self,
        *,
        store: JsonFileStore | None = None,
        clock: Clock = monotonic_clock,
        provider_cooldown: float = 15.0,
        url_cooldown: float = 30.0,
        host_failure_threshold: int = 3,
        host_cooldown: float = 120.0,
    ) -> None:
        self._store = store
        self.clock = clock
        self._provider_cooldown = provider_cooldown
        self._url_cooldown = url_cooldown
        self._host_failure_threshold = host_failure_threshold
        self._host_cooldown = host_cooldown

        self._lock = asyncio.Lock()
        self._provider_breakers: dict[str, CooldownBreaker] = {}
        self._host_breakers: dict[str, CooldownBreaker] = {}
        self._last_fetch: dict[str, float] = {}
        self._blocked: dict[str, str] = {}

    @classmethod
    def from_settings(
        cls,
        settings: HarvestSettings,
        *,
        store: JsonFileStore | None = None,
        clock: Clock = monotonic_clock,
    ) -> ResilienceState:
        return cls(
            store=store,
            clock=clock,
            provider_cooldown=settings.primary_breaker_cooldown,
            url_cooldown=settings.enrichment_cooldown,
            host_failure_threshold=settings.processing_breaker_threshold,
            host_cooldown=settings.processing_breaker_cooldown,
        )

    # ── Provider breakers ────────────────────────────────────────────────

    def provider_breaker(self, provider: str) -> CooldownBreaker:
        breaker = self._provider_breakers.get(provider)
        if breaker is None:
            breaker = CooldownBreaker(
                name=provider,
                cooldown=self._provider_cooldown,
                clock=self.clock,
            )
            self._provider_breakers[provider] = breaker
        return breaker

    def reset_provider(self, provider: str) -> None:
        self.provider_breaker(provider).reset()

    # ── Per-host 202 breakers ────────────────────────────────────────────

    def host_breaker(self, host: str) -> CooldownBreaker:
        breaker = self._host_breakers.get(host)
        if breaker is None:
            breaker = CooldownBreaker(
                name=f"processing:{host}",
                cooldown=self._host_cooldown,
                failure_threshold=self._host_failure_threshold,
                clock=self.clock,
            )
            self._host_breakers[host] = breaker
        return breaker

    # ── Per-URL fetch cooldown ───────────────────────────────────────────

    async def claim_fetch(self, url: str) -> bool:
        """
        Record a fetch of ``url`` and report whether it may proceed.

        Returns False when the same URL was claimed less than the cooldown ago.
        """
        async with self._lock:
            now = self.clock()
            last = self._last_fetch.get(url)
            if last is not None and now - last < self._url_cooldown:
                return False
            self._last_fetch[url] = now
            if len(self._last_fetch) > _FETCH_MAP_PRUNE_SIZE:
                self._last_fetch = {
                    u: t for u, t in self._last_fetch.items() if now - t < self._url_cooldown
                }
            return True

    # ── Block-list ───────────────────────────────────────────────────────

    async def is_blocked(self, url: str) -> bool:
        if url in self._blocked:
            return True
        if self._store is not None and await self._store.is_blocked(url):
            return True
        return False

    async def block_url(self, url: str, reason: str) -> None:
        async with self._lock:
            if url in self._blocked:
                return
            self._blocked[url] = reason
        logger.warning(f"Blocking URL ({reason}): {url}")
        if self._store is not None:
            await self._store.block_url(url, reason)

    def blocked_reason(self, url: str) -> str | None:
        return self._blocked.get(url)
