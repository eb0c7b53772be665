"""
Scholar Harvest MCP Server

Usage as standalone server:
    python -m scholar_harvest.presentation.mcp_server

Or in mcp.json:
    {
        "servers": {
            "scholar-harvest": {
                "type": "stdio",
                "command": "scholar-harvest-mcp"
            }
        }
    }
"""

from __future__ import annotations

from .server import create_server, get_container, main
from .tools import register_tools

__all__ = ["create_server", "get_container", "main", "register_tools"]
