"""
Scholar Harvest MCP Server

Exposes the literature acquisition pipeline as MCP tools:
- search_literature: multi-strategy, multi-provider paper search
- fetch_abstract: recover the abstract from a landing page
- retrieve_document: fetch the primary source (PDF, else HTML) of a paper
- list_blocked_urls: inspect the persisted block-list

Architecture:
- tools.py: tool registration
- container: DI container (dependency-injector) for service lifecycle
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from scholar_harvest.container import ApplicationContainer
from scholar_harvest.core.config import HarvestSettings, load_settings

from .tools import register_tools

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

logger = logging.getLogger(__name__)

SERVER_INSTRUCTIONS = """Scholar Harvest builds a literature corpus for a research topic.

1. search_literature(topic, scan_depth) to collect deduplicated papers
2. fetch_abstract(url) when a paper shows a placeholder summary
3. retrieve_document(title, url, open_access_pdf_url) to fetch the full text

Blocked or slow publisher sites are skipped and remembered; see list_blocked_urls.
"""

# ── Module-level DI container ──────────────────────────────────────────────
_container: ApplicationContainer | None = None


def get_container() -> ApplicationContainer:
    """Get the application DI container.

    Raises:
        RuntimeError: If ``create_server()`` has not been called yet.
    """
    if _container is None:
        msg = "Container not initialized. Call create_server() first."
        raise RuntimeError(msg)
    return _container


async def _close_clients(container: ApplicationContainer) -> None:
    """Close the HTTP clients shared through the container."""
    for provider in (container.gateway, container.primary, container.llm):
        client = provider()
        if client is not None:
            await client.close()


def _make_lifespan(
    container: ApplicationContainer,
) -> Callable[[FastMCP[Any]], AbstractAsyncContextManager[ApplicationContainer]]:
    """Create a FastMCP lifespan handler bound to *container*."""

    @asynccontextmanager
    async def _lifespan(server: FastMCP[Any]) -> AsyncIterator[ApplicationContainer]:
        logger.info("Lifecycle: startup, resources ready")
        try:
            yield container
        finally:
            await _close_clients(container)
            logger.info("Lifecycle: shutdown, HTTP clients closed")

    return _lifespan


def create_server(
    settings: HarvestSettings | None = None,
    name: str = "scholar-harvest",
) -> FastMCP:
    """
    Create and configure the Scholar Harvest MCP server.

    Args:
        settings: Runtime settings. Default: ``load_settings()``.
        name: Server name.

    Returns:
        Configured FastMCP server instance.

    Raises:
        ConfigurationError: settings are invalid or credentials are missing.
    """
    global _container
    settings = settings or load_settings()
    logger.info("Initializing Scholar Harvest MCP Server...")

    _container = ApplicationContainer()
    _container.config.from_dict(settings.as_dict())

    mcp = FastMCP(
        name,
        instructions=SERVER_INSTRUCTIONS,
        lifespan=_make_lifespan(_container),
    )

    # Resolve eagerly so configuration errors surface at startup
    registered = register_tools(
        mcp,
        orchestrator=_container.orchestrator(),
        enrichment=_container.enrichment(),
        resolver=_container.resolver(),
        store=_container.store(),
        max_scan_depth=settings.max_scan_depth,
    )
    logger.info("Registered %d tools", registered)
    logger.info("Data directory: %s", settings.data_dir)
    logger.info("LLM provider: %s", settings.llm_provider)

    return mcp


def main():
    """Run the MCP server over stdio."""
    settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    server = create_server(settings)
    server.run()


if __name__ == "__main__":
    main()
