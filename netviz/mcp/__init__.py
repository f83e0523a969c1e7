"""netviz MCP server: exposes graph operations as tools for AI agents."""

from netviz.mcp.server import mcp, run_server

__all__ = ["mcp", "run_server"]
