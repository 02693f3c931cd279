"""MCP client implementation.

Connects to configured MCP servers over stdio or streamable HTTP and
invokes their tools on behalf of mcp and agent nodes.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from flowchord.errors.exceptions import AuthorizationRequiredError, ConfigurationError
from flowchord.protocols.mcp.types import MCPServerConfig, MCPTool, MCPToolResult

logger = logging.getLogger(__name__)


class MCPToolInvoker(ABC):
    """Narrow tool-invocation capability the engine depends on."""

    @abstractmethod
    async def list_tools(self, server_id: str) -> list[MCPTool]:
        """List tools offered by a server."""
        ...

    @abstractmethod
    async def call_tool(
        self,
        server_id: str,
        name: str,
        arguments: dict[str, Any] | None = None,
    ) -> MCPToolResult:
        """Call a tool.

        Raises:
            AuthorizationRequiredError: If the server needs the user to authorize first.
        """
        ...


def _is_unauthorized(error: BaseException) -> bool:
    """Find a 401 response anywhere in an exception (group) chain."""
    if isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 401:
        return True
    if isinstance(error, BaseExceptionGroup):
        return any(_is_unauthorized(e) for e in error.exceptions)
    cause = error.__cause__ or error.__context__
    return cause is not None and _is_unauthorized(cause)


class MCPClient(MCPToolInvoker):
    """Client for MCP servers registered by id.

    A session is opened per operation and closed before returning, so no
    connection outlives the node that used it.

    Example:
        >>> client = MCPClient([MCPServerConfig(server_id="fs", command="npx", args=[...])])
        >>> tools = await client.list_tools("fs")
        >>> result = await client.call_tool("fs", "read_file", {"path": "/tmp/a.txt"})
    """

    def __init__(self, servers: list[MCPServerConfig] | None = None) -> None:
        self._servers: dict[str, MCPServerConfig] = {}
        self._tool_cache: dict[str, list[MCPTool]] = {}
        for config in servers or []:
            self.register_server(config)

    def register_server(self, config: MCPServerConfig) -> None:
        self._servers[config.server_id] = config
        self._tool_cache.pop(config.server_id, None)

    def get_server(self, server_id: str) -> MCPServerConfig:
        config = self._servers.get(server_id)
        if config is None:
            available = list(self._servers)
            raise ConfigurationError(
                f"MCP server '{server_id}' is not configured. Available servers: {available}"
            )
        return config

    @property
    def server_ids(self) -> list[str]:
        return list(self._servers)

    @asynccontextmanager
    async def _session(self, config: MCPServerConfig) -> AsyncIterator[Any]:
        from mcp import ClientSession, StdioServerParameters
        from mcp.client.stdio import stdio_client
        from mcp.client.streamable_http import streamablehttp_client

        if config.transport == "http":
            if not config.url:
                raise ConfigurationError(f"MCP server '{config.server_id}' has no url")
            async with streamablehttp_client(config.url, headers=config.headers or None) as (
                read_stream,
                write_stream,
                _,
            ):
                async with ClientSession(read_stream, write_stream) as session:
                    await session.initialize()
                    yield session
        else:
            if not config.command:
                raise ConfigurationError(f"MCP server '{config.server_id}' has no command")
            params = StdioServerParameters(
                command=config.command,
                args=config.args,
                env=config.env or None,
            )
            async with stdio_client(params) as (read_stream, write_stream):
                async with ClientSession(read_stream, write_stream) as session:
                    await session.initialize()
                    yield session

    def _authorization_error(self, config: MCPServerConfig, tool_name: str) -> AuthorizationRequiredError:
        return AuthorizationRequiredError(
            f"MCP server '{config.server_id}' requires authorization",
            tool_name=tool_name,
            auth_id=config.server_id,
            auth_url=config.auth_url,
        )

    async def list_tools(self, server_id: str) -> list[MCPTool]:
        if server_id in self._tool_cache:
            return self._tool_cache[server_id]

        config = self.get_server(server_id)
        try:
            async with self._session(config) as session:
                response = await session.list_tools()
        except Exception as e:
            if _is_unauthorized(e):
                raise self._authorization_error(config, server_id) from e
            raise

        tools = [
            MCPTool(
                name=t.name,
                description=t.description or "",
                input_schema=t.inputSchema or {},
                server_id=server_id,
            )
            for t in response.tools
        ]
        self._tool_cache[server_id] = tools
        return tools

    async def call_tool(
        self,
        server_id: str,
        name: str,
        arguments: dict[str, Any] | None = None,
    ) -> MCPToolResult:
        from mcp import types

        config = self.get_server(server_id)
        try:
            async with self._session(config) as session:
                result = await session.call_tool(name, arguments or {})
        except Exception as e:
            if _is_unauthorized(e):
                raise self._authorization_error(config, name) from e
            raise

        content_parts = []
        for block in result.content:
            if isinstance(block, types.TextContent):
                content_parts.append(block.text)
            elif hasattr(block, "text"):
                content_parts.append(str(block.text))

        logger.debug("MCP tool %s/%s returned %d blocks", server_id, name, len(result.content))
        return MCPToolResult(
            content="\n".join(content_parts),
            is_error=bool(getattr(result, "isError", False)),
            structured=getattr(result, "structuredContent", None),
        )

    def __repr__(self) -> str:
        return f"MCPClient(servers={len(self._servers)})"
