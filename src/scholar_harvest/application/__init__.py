"""
Application Layer - pipeline use cases

Contains:
- search: query strategies and multi-provider aggregation
- enrichment: abstract recovery from landing pages
- retrieval: primary-source document resolution
"""

from .enrichment.abstract_pipeline import NOT_FOUND, AbstractEnrichmentPipeline
from .retrieval.document_resolver import DocumentResolver, ResolutionSession
from .search.orchestrator import AggregationOrchestrator
from .search.query_strategy import QueryStrategyGenerator

__all__ = [
    # Search
    "QueryStrategyGenerator",
    "AggregationOrchestrator",
    # Enrichment
    "AbstractEnrichmentPipeline",
    "NOT_FOUND",
    # Retrieval
    "DocumentResolver",
    "ResolutionSession",
]
