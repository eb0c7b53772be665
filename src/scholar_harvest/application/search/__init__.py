"""Search use cases: strategy generation and aggregation."""

from .orchestrator import AggregationOrchestrator
from .query_strategy import QueryStrategyGenerator, basic_keywords

__all__ = ["AggregationOrchestrator", "QueryStrategyGenerator", "basic_keywords"]
