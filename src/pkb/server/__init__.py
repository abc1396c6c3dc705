"""MCP server exposing PKB search."""

from pkb.server.mcp_server import create_mcp_server

__all__ = ["create_mcp_server"]
