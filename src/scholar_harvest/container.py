"""
Application DI Container (dependency-injector).

Centralizes service creation and lifecycle management.

Usage::

    from scholar_harvest.container import ApplicationContainer
    from scholar_harvest.core.config import load_settings

    container = ApplicationContainer()
    container.config.from_dict(load_settings().as_dict())

    orchestrator = container.orchestrator()
    resolver = container.resolver()

    # In tests, override any provider:
    container.gateway.override(providers.Object(fake_gateway))
"""

from __future__ import annotations

import logging
from typing import Any

from dependency_injector import containers, providers

from scholar_harvest.core.config import HarvestSettings

logger = logging.getLogger(__name__)


def _create_settings(values: dict[str, Any] | None) -> HarvestSettings:
    return HarvestSettings.from_dict(values or {})


def _create_store(settings: HarvestSettings) -> object:
    """Lazy factory for JsonFileStore (avoids top-level import)."""
    from scholar_harvest.infrastructure.persistence import JsonFileStore

    return JsonFileStore(settings.data_dir)


def _create_resilience(settings: HarvestSettings, store: object) -> object:
    from scholar_harvest.core.resilience import ResilienceState

    return ResilienceState.from_settings(settings, store=store)


def _create_gateway(settings: HarvestSettings) -> object:
    from scholar_harvest.infrastructure.http import NetworkGateway

    return NetworkGateway(
        timeout=settings.gateway_timeout,
        user_agent=settings.user_agent,
        max_body_bytes=settings.max_body_bytes,
    )


def _create_llm(settings: HarvestSettings) -> object:
    from scholar_harvest.infrastructure.llm import create_llm_client

    return create_llm_client(settings)


def _create_pdf_extractor(settings: HarvestSettings) -> object:
    from scholar_harvest.infrastructure.pdf import PdfTextExtractor

    return PdfTextExtractor(max_pages=settings.pdf_max_pages)


def _create_primary(settings: HarvestSettings, resilience: Any) -> object:
    from scholar_harvest.infrastructure.sources import SemanticScholarClient

    return SemanticScholarClient.from_settings(settings, resilience)


def _create_secondary(settings: HarvestSettings, gateway: Any) -> object:
    from scholar_harvest.infrastructure.sources import GoogleScholarScraper

    return GoogleScholarScraper.from_settings(settings, gateway)


def _create_strategy_generator(llm: Any) -> object:
    from scholar_harvest.application.search import QueryStrategyGenerator

    return QueryStrategyGenerator(llm=llm)


def _create_orchestrator(
    settings: HarvestSettings,
    strategy_generator: Any,
    primary: Any,
    secondary: Any,
    store: Any,
) -> object:
    from scholar_harvest.application.search import AggregationOrchestrator

    return AggregationOrchestrator.from_settings(settings, strategy_generator, primary, secondary, store=store)


def _create_enrichment(settings: HarvestSettings, gateway: Any, resilience: Any, llm: Any) -> object:
    from scholar_harvest.application.enrichment import AbstractEnrichmentPipeline

    return AbstractEnrichmentPipeline.from_settings(settings, gateway, resilience, llm)


def _create_resolver(
    settings: HarvestSettings,
    gateway: Any,
    resilience: Any,
    extractor: Any,
    store: Any,
) -> object:
    from scholar_harvest.application.retrieval import DocumentResolver

    return DocumentResolver.from_settings(settings, gateway, resilience, extractor, store)


class ApplicationContainer(containers.DeclarativeContainer):
    """Central DI container for the Scholar Harvest pipeline.

    One ResilienceState is shared by every component, so provider breakers,
    host breakers and the block-list are process-wide.
    """

    config = providers.Configuration()

    settings = providers.Singleton(_create_settings, config)

    store = providers.Singleton(_create_store, settings)
    resilience = providers.Singleton(_create_resilience, settings, store)
    gateway = providers.Singleton(_create_gateway, settings)
    llm = providers.Singleton(_create_llm, settings)
    pdf_extractor = providers.Singleton(_create_pdf_extractor, settings)

    primary = providers.Singleton(_create_primary, settings, resilience)
    secondary = providers.Singleton(_create_secondary, settings, gateway)

    strategy_generator = providers.Singleton(_create_strategy_generator, llm)
    orchestrator = providers.Singleton(
        _create_orchestrator,
        settings,
        strategy_generator,
        primary,
        secondary,
        store,
    )
    enrichment = providers.Singleton(_create_enrichment, settings, gateway, resilience, llm)
    resolver = providers.Singleton(
        _create_resolver,
        settings,
        gateway,
        resilience,
        pdf_extractor,
        store,
    )


__all__ = ["ApplicationContainer"]
