"""Agent node: one LLM call, optionally with MCP tools in a bounded loop."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import jsonschema

from flowchord.core.structured import OutputSchema, parse_json_text
from flowchord.core.types import Node, NodeOutcome, NodeType, PendingAuth, ToolCall
from flowchord.errors.exceptions import (
    AuthorizationRequiredError,
    ConfigurationError,
    LLMError,
    NodeExecutionError,
)
from flowchord.llm.types import LLMToolCall, Message, ToolDefinition, Usage
from flowchord.nodes.base import BaseNodeHandler, NodeContext

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = "Process the input"


def _tool_refs(data: dict[str, Any]) -> list[tuple[str, str | None]]:
    """(server_id, tool_name or None for all tools) pairs attached to a node.

    ``mcpServers`` holds server ids (or objects with ``serverId``/``id``);
    ``mcpTools`` holds ``"serverId:toolName"`` or bare server ids.
    """
    refs: list[tuple[str, str | None]] = []
    for entry in data.get("mcpServers") or []:
        if isinstance(entry, dict):
            server_id = entry.get("serverId") or entry.get("id")
        else:
            server_id = entry
        if server_id:
            refs.append((str(server_id), None))
    for entry in data.get("mcpTools") or []:
        if isinstance(entry, dict):
            server_id = entry.get("serverId") or entry.get("server")
            tool = entry.get("toolName") or entry.get("name")
            if server_id:
                refs.append((str(server_id), tool))
        elif isinstance(entry, str) and entry:
            server_id, sep, tool = entry.partition(":")
            refs.append((server_id, tool if sep else None))
    return refs


def mock_output(raw: str, node: Node) -> Any:
    """Pick the canned output for a node from the mock configuration."""
    try:
        config = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(config, dict):
        for key in (node.id, node.name, "default"):
            if key and key in config:
                return config[key]
    return config


class AgentNodeHandler(BaseNodeHandler):
    """Runs the node's instructions against an LLM.

    With MCP servers attached the model may call their tools; each round of
    calls is executed and fed back until the model answers in text or
    ``maxToolRounds`` rounds have been spent.
    """

    node_type = NodeType.AGENT

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        data = node.data
        instructions = ctx.interpolate(data.get("instructions") or DEFAULT_INSTRUCTIONS)
        include_history = bool(data.get("includeChatHistory"))

        if ctx.services.mock_agent_response:
            output = mock_output(ctx.services.mock_agent_response, node)
            text = output if isinstance(output, str) else json.dumps(output)
            return NodeOutcome(
                output=output,
                chat_turn={"user": instructions, "assistant": text} if include_history else None,
            )

        try:
            schema = OutputSchema.from_config(data.get("jsonSchema"), name=node.name or node.id)
        except ValueError as e:
            raise NodeExecutionError(str(e), node_id=node.id) from e
        wants_json = schema is not None or str(data.get("outputFormat", "")).lower() == "json"

        tools, routes = await self._collect_tools(node, ctx)

        system_prompt = ctx.interpolate(data.get("systemPrompt") or "").strip()
        if tools:
            system_prompt += (
                "\n\nYou have access to these tools: "
                + ", ".join(t.name for t in tools)
                + ". Use them when they help answer the request."
            )
        if schema is not None:
            system_prompt += schema.to_system_prompt_instruction()
        elif wants_json:
            system_prompt += "\n\nRespond ONLY with a valid JSON value."

        messages: list[Message] = []
        if system_prompt.strip():
            messages.append(Message.system(system_prompt.strip()))
        if include_history:
            for turn in ctx.scope.chat_history:
                messages.append(Message.user(turn.get("user", "")))
                messages.append(Message.assistant(turn.get("assistant", "")))
        messages.append(Message.user(instructions))

        try:
            provider = ctx.get_llm(data.get("model"))
        except (ConfigurationError, LLMError) as e:
            raise NodeExecutionError(f"Agent execution failed: {e.message}", node_id=node.id) from e

        max_rounds = int(data.get("maxToolRounds") or ctx.config.max_tool_rounds)
        records: list[ToolCall] = []
        usage = Usage()
        started = time.perf_counter()
        content = ""

        for round_no in range(max_rounds + 1):
            try:
                response = await provider.complete(
                    messages,
                    tools=tools or None,
                    temperature=float(data.get("temperature", 0.7)),
                    max_tokens=int(data.get("maxTokens", 4096)),
                )
            except LLMError as e:
                raise NodeExecutionError(
                    f"Agent execution failed: {e.message}",
                    node_id=node.id,
                    retryable=e.retryable,
                ) from e

            usage = Usage(
                prompt_tokens=usage.prompt_tokens + response.usage.prompt_tokens,
                completion_tokens=usage.completion_tokens + response.usage.completion_tokens,
            )
            content = response.content
            if not response.tool_calls or not tools:
                break
            if round_no == max_rounds:
                logger.warning(
                    "Agent node %s stopped after %d tool rounds", node.id, max_rounds
                )
                break

            messages.append(Message.assistant(content, tool_calls=response.tool_calls))
            for call in response.tool_calls:
                try:
                    record = await self._call_tool(call, routes, ctx)
                except AuthorizationRequiredError as e:
                    return NodeOutcome(
                        tool_calls=records,
                        pending_auth=PendingAuth(
                            tool_name=e.tool_name,
                            message=e.message,
                            auth_id=e.auth_id,
                            auth_url=e.auth_url,
                            node_id=node.id,
                            kind="oauth",
                        ),
                    )
                records.append(record)
                messages.append(Message.tool(self._tool_message(record), call.id))

        ctx.console.llm_call(
            provider.model, usage.total_tokens, int((time.perf_counter() - started) * 1000)
        )

        output: Any = content
        if schema is not None:
            try:
                output = schema.validate(content)
            except json.JSONDecodeError as e:
                raise NodeExecutionError(
                    f"Agent output is not valid JSON: {e.msg}", node_id=node.id
                ) from e
            except jsonschema.ValidationError as e:
                raise NodeExecutionError(
                    f"Agent output does not match jsonSchema: {e.message}",
                    node_id=node.id,
                ) from e
        elif wants_json:
            try:
                output = parse_json_text(content)
            except json.JSONDecodeError:
                logger.warning("Agent node %s returned non-JSON output; keeping text", node.id)

        return NodeOutcome(
            output=output,
            tool_calls=records,
            chat_turn={"user": instructions, "assistant": content} if include_history else None,
        )

    async def _collect_tools(
        self, node: Node, ctx: NodeContext
    ) -> tuple[list[ToolDefinition], dict[str, tuple[str, str]]]:
        refs = _tool_refs(node.data)
        if not refs:
            return [], {}
        if ctx.services.mcp is None:
            raise NodeExecutionError(
                "Agent node has MCP tools attached but no MCP client is configured",
                node_id=node.id,
            )

        tools: list[ToolDefinition] = []
        routes: dict[str, tuple[str, str]] = {}
        for server_id, wanted in refs:
            try:
                available = await ctx.services.mcp.list_tools(server_id)
            except ConfigurationError as e:
                raise NodeExecutionError(e.message, node_id=node.id) from e
            for tool in available:
                if wanted and tool.name != wanted:
                    continue
                exposed = tool.name if tool.name not in routes else f"{server_id}__{tool.name}"
                routes[exposed] = (server_id, tool.name)
                tools.append(
                    ToolDefinition(
                        name=exposed,
                        description=tool.description,
                        parameters=tool.input_schema or {"type": "object", "properties": {}},
                    )
                )
            if wanted and not any(r == (server_id, wanted) for r in routes.values()):
                logger.warning("MCP tool not found: %s:%s", server_id, wanted)
        return tools, routes

    async def _call_tool(
        self,
        call: LLMToolCall,
        routes: dict[str, tuple[str, str]],
        ctx: NodeContext,
    ) -> ToolCall:
        route = routes.get(call.name)
        if route is None:
            return ToolCall(
                id=call.id,
                name=call.name,
                arguments=call.arguments,
                result=f"Unknown tool: {call.name}",
                is_error=True,
            )
        server_id, tool_name = route
        started = time.perf_counter()
        result = await ctx.services.mcp.call_tool(server_id, tool_name, call.arguments)
        ctx.console.tool_call(
            tool_name, not result.is_error, int((time.perf_counter() - started) * 1000)
        )
        return ToolCall(
            id=call.id,
            name=tool_name,
            arguments=call.arguments,
            result=result.structured if result.structured is not None else result.content,
            server=server_id,
            is_error=result.is_error,
        )

    @staticmethod
    def _tool_message(record: ToolCall) -> str:
        if isinstance(record.result, str):
            return record.result
        return json.dumps(record.result, default=str)

