"""Server configuration and tool shapes for the MCP client."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class MCPServerConfig(BaseModel):
    """How to reach one MCP server that workflows refer to by ``server_id``.

    ``stdio`` servers are spawned from ``command``/``args``/``env``;
    ``http`` servers are reached at ``url`` with optional ``headers``.
    ``auth_url`` is handed to the user when the server answers 401, which
    suspends the mcp node until the authorization is resolved.

    Example:
        >>> MCPServerConfig(server_id="fs", command="npx", args=["-y", "@modelcontextprotocol/server-filesystem", "/data"])
        >>> MCPServerConfig(server_id="docs", transport="http", url="https://mcp.example.com/mcp")
    """

    server_id: str
    transport: Literal["stdio", "http"] = "stdio"
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    auth_url: str | None = None


class MCPTool(BaseModel):
    """A tool as listed by ``tools/list``, tagged with the server it came from."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)
    server_id: str


class MCPToolResult(BaseModel):
    """Outcome of ``tools/call``.

    ``content`` joins the text blocks; ``structured`` holds
    ``structuredContent`` when the server provides it.
    """

    content: str
    is_error: bool = False
    structured: Any = None
