"""MCP (Model Context Protocol) integration.

Requires the `mcp` package for live servers.
"""

from flowchord.protocols.mcp.client import MCPClient, MCPToolInvoker
from flowchord.protocols.mcp.types import MCPServerConfig, MCPTool, MCPToolResult

__all__ = [
    "MCPClient",
    "MCPToolInvoker",
    "MCPServerConfig",
    "MCPTool",
    "MCPToolResult",
]
