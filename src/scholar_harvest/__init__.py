"""
Scholar Harvest - literature acquisition pipeline exposed as an MCP server.

Turns a free-text research topic into a deduplicated corpus of papers,
recovers missing abstracts from landing pages and retrieves primary
sources (PDF, else HTML) for individual papers.

Usage:
    from scholar_harvest.container import ApplicationContainer
    from scholar_harvest.domain.entities import SearchFilters

    container = ApplicationContainer()
    papers = await container.orchestrator().search("Impact of AI on cancer", SearchFilters(scan_depth=30))
"""

__version__ = "0.1.0"
