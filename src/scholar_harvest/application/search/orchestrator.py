"""
AggregationOrchestrator - runs query strategies until the target corpus size is met.

Flow:
    GENERATE_QUERIES
      -> for each strategy: reset primary breaker, search, merge (dedup by title)
         -> target met? done
         -> politeness delay before the next strategy
      -> still short? one secondary-provider search with the original topic
      -> truncate to scan_depth, persist

Each call starts with a fresh dedup set. Provider breaker state lives in the
shared ResilienceState and is reset explicitly before every strategy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from scholar_harvest.core.async_utils import Sleep
from scholar_harvest.core.exceptions import Blocked, NetworkFailure
from scholar_harvest.domain.entities import Paper, SearchFilters

if TYPE_CHECKING:
    from scholar_harvest.application.search.query_strategy import QueryStrategyGenerator
    from scholar_harvest.core.config import HarvestSettings
    from scholar_harvest.infrastructure.persistence.store import JsonFileStore
    from scholar_harvest.infrastructure.sources import GoogleScholarScraper, SemanticScholarClient

logger = logging.getLogger(__name__)


class AggregationOrchestrator:
    """
    Multi-strategy, multi-provider paper aggregation.

    Usage:
        orchestrator = AggregationOrchestrator(generator, primary, secondary)
        papers = await orchestrator.search("Impact of AI on cancer", SearchFilters(scan_depth=30))
    """

    def __init__(
        self,
        strategy_generator: QueryStrategyGenerator,
        primary: SemanticScholarClient,
        secondary: GoogleScholarScraper | None = None,
        *,
        store: JsonFileStore | None = None,
        margin: int = 20,
        politeness_delay: float = 5.0,
        secondary_enabled: bool = True,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._strategies = strategy_generator
        self._primary = primary
        self._secondary = secondary
        self._store = store
        self._margin = margin
        self._politeness_delay = politeness_delay
        self._secondary_enabled = secondary_enabled
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: HarvestSettings,
        strategy_generator: QueryStrategyGenerator,
        primary: SemanticScholarClient,
        secondary: GoogleScholarScraper | None = None,
        **kwargs: Any,
    ) -> AggregationOrchestrator:
        return cls(
            strategy_generator,
            primary,
            secondary,
            margin=settings.strategy_margin,
            politeness_delay=settings.politeness_delay,
            secondary_enabled=settings.secondary_enabled,
            **kwargs,
        )

    async def search(
        self,
        topic: str,
        filters: SearchFilters | None = None,
        *,
        refine_topic: bool = False,
    ) -> list[Paper]:
        """
        Aggregate up to ``filters.scan_depth`` unique papers for ``topic``.

        Args:
            topic: Free-text research topic
            filters: Year range and target size (defaults to SearchFilters())
            refine_topic: Ask the LLM for a sharper topic first

        Returns:
            Deduplicated papers, never more than ``scan_depth``

        Raises:
            InvalidQueryError: topic is empty
        """
        filters = filters or SearchFilters()
        target = filters.scan_depth

        query_topic = topic
        if refine_topic:
            query_topic = await self._strategies.refine_topic(topic)
            if query_topic != topic:
                logger.info(f"Refined topic '{topic}' -> '{query_topic}'")

        strategies = await self._strategies.generate(query_topic)

        accepted: list[Paper] = []
        seen: set[str] = set()

        for index, query in enumerate(strategies):
            self._primary.reset_circuit_breaker()
            remaining = target - len(accepted)
            logger.info(f"Strategy {index + 1}/{len(strategies)}: '{query}' (need {remaining})")

            results = await self._primary.search(query, filters, remaining + self._margin)
            added = self._merge(results, accepted, seen, target)
            logger.info(f"Strategy '{query}' added {added} new papers ({len(accepted)}/{target})")

            if len(accepted) >= target:
                break
            if index + 1 < len(strategies):
                await self._sleep(self._politeness_delay)

        if len(accepted) < target:
            await self._run_secondary(topic, accepted, seen, target)

        papers = accepted[:target]
        logger.info(f"Aggregated {len(papers)} papers for '{topic}'")
        await self._persist(papers)
        return papers

    async def _run_secondary(
        self,
        topic: str,
        accepted: list[Paper],
        seen: set[str],
        target: int,
    ) -> None:
        if self._secondary is None or not self._secondary_enabled:
            return
        needed = target - len(accepted)
        logger.info(f"Primary strategies exhausted, falling back to secondary provider for {needed} papers")
        try:
            results = await self._secondary.search(topic, count=needed)
        except Blocked as e:
            logger.warning(f"Secondary provider blocked ({e.reason}), keeping {len(accepted)} papers")
            return
        except NetworkFailure as e:
            logger.warning(f"Secondary provider unreachable: {e}")
            return
        added = self._merge(results, accepted, seen, target)
        logger.info(f"Secondary provider added {added} new papers")

    @staticmethod
    def _merge(results: list[Paper], accepted: list[Paper], seen: set[str], target: int) -> int:
        added = 0
        for paper in results:
            if len(accepted) >= target:
                break
            key = paper.dedup_key
            if not key or key in seen:
                continue
            seen.add(key)
            accepted.append(paper)
            added += 1
        return added

    async def _persist(self, papers: list[Paper]) -> None:
        if self._store is None or not papers:
            return
        try:
            await self._store.save_papers(papers)
        except OSError as e:
            logger.warning(f"Failed to persist {len(papers)} papers: {e}")
