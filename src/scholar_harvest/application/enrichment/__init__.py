"""Abstract enrichment."""

from .abstract_pipeline import NOT_FOUND, AbstractEnrichmentPipeline, run_extraction_cascade

__all__ = ["AbstractEnrichmentPipeline", "NOT_FOUND", "run_extraction_cascade"]
