"""MCP node: calls a single tool on a configured MCP server."""

from __future__ import annotations

import json
import time
from typing import Any

from flowchord.core.types import Node, NodeOutcome, NodeType, PendingAuth, ToolCall
from flowchord.errors.exceptions import (
    AuthorizationRequiredError,
    ConfigurationError,
    NodeExecutionError,
)
from flowchord.nodes.base import BaseNodeHandler, NodeContext
from flowchord.protocols.mcp.types import MCPToolResult


def _server_id(data: dict[str, Any]) -> str | None:
    server = data.get("serverId") or data.get("mcpServer")
    if not server:
        servers = data.get("mcpServers") or []
        if servers:
            first = servers[0]
            if isinstance(first, dict):
                server = first.get("serverId") or first.get("id")
            else:
                server = first
    return str(server) if server else None


def tool_output(result: MCPToolResult) -> Any:
    """Structured content when present, else the text parsed as JSON when it parses."""
    if result.structured is not None:
        return result.structured
    try:
        return json.loads(result.content)
    except (json.JSONDecodeError, TypeError):
        return result.content


class MCPNodeHandler(BaseNodeHandler):
    node_type = NodeType.MCP

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        data = node.data
        server_id = _server_id(data)
        tool_name = data.get("toolName") or data.get("mcpTool")
        if not server_id or not tool_name:
            raise NodeExecutionError("MCP node requires a server and a toolName", node_id=node.id)
        if ctx.services.mcp is None:
            raise NodeExecutionError("No MCP client is configured", node_id=node.id)

        arguments = ctx.interpolate_value(data.get("parameters") or {})
        if not isinstance(arguments, dict):
            raise NodeExecutionError("MCP parameters must be an object", node_id=node.id)

        started = time.perf_counter()
        try:
            result = await ctx.services.mcp.call_tool(server_id, tool_name, arguments)
        except AuthorizationRequiredError as e:
            return NodeOutcome(
                pending_auth=PendingAuth(
                    tool_name=e.tool_name,
                    message=e.message,
                    auth_id=e.auth_id,
                    auth_url=e.auth_url,
                    node_id=node.id,
                    kind="oauth",
                )
            )
        except ConfigurationError as e:
            raise NodeExecutionError(e.message, node_id=node.id) from e
        ctx.console.tool_call(tool_name, not result.is_error, int((time.perf_counter() - started) * 1000))

        if result.is_error:
            raise NodeExecutionError(
                f"MCP tool '{tool_name}' failed: {result.content}", node_id=node.id
            )

        output = tool_output(result)
        output_path = data.get("outputPath")
        if output_path:
            output = ctx.resolver.lookup(f"result.{output_path}", {"result": output})

        call = ToolCall(name=tool_name, arguments=arguments, result=output, server=server_id)
        return NodeOutcome(output=output, tool_calls=[call])
