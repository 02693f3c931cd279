"""Unit tests for agent and extract node handlers."""

from __future__ import annotations

import json

import pytest

from flowchord.core.config import EngineConfig
from flowchord.errors.exceptions import NodeExecutionError
from flowchord.llm.mock import MockLLMProvider
from flowchord.llm.registry import build_default_registry
from flowchord.llm.types import LLMToolCall, MessageRole
from flowchord.nodes.agent import AgentNodeHandler, mock_output
from flowchord.nodes.base import NodeServices
from flowchord.nodes.extract import ExtractNodeHandler
from tests.conftest import FakeMCPInvoker, as_node, make_tool, node

PERSON_SCHEMA = json.dumps({
    "type": "object",
    "properties": {"name": {"type": "string"}},
    "required": ["name"],
})


def _services(llm: MockLLMProvider, mcp=None, **kwargs) -> NodeServices:
    return NodeServices(llm_factory=lambda model: llm, mcp=mcp, **kwargs)


def _search_call(call_id: str = "c1", name: str = "search") -> LLMToolCall:
    return LLMToolCall(id=call_id, name=name, arguments={"q": "tides"})


class TestMockOutput:
    """Tests for canned agent output."""

    def test_plain_text(self) -> None:
        """Non-JSON configuration is returned as text."""
        assert mock_output("canned", as_node(node("a", "agent"))) == "canned"

    def test_keyed_by_id_name_then_default(self) -> None:
        """A JSON object is looked up by node id, node name, then default."""
        raw = json.dumps({"writer": "draft", "Reviewer": {"ok": True}, "default": "fallback"})

        assert mock_output(raw, as_node(node("writer", "agent"))) == "draft"
        assert mock_output(raw, as_node(node("r1", "agent", nodeName="Reviewer"))) == {"ok": True}
        assert mock_output(raw, as_node(node("other", "agent"))) == "fallback"

    def test_unkeyed_json(self) -> None:
        """JSON without a matching key is returned whole."""
        assert mock_output("[1, 2]", as_node(node("a", "agent"))) == [1, 2]


class TestAgentNode:
    """Tests for AgentNodeHandler."""

    @pytest.mark.asyncio
    async def test_echo_with_interpolated_instructions(self, make_ctx, llm) -> None:
        """Instructions are interpolated and sent as the user message."""
        agent = as_node(node("a", "agent", instructions="Summarize {{input.topic}}", systemPrompt="Be brief"))

        outcome = await AgentNodeHandler().execute(agent, make_ctx({"topic": "tides"}))

        assert outcome.output == "Summarize tides"
        messages = llm.received_messages[0]
        assert messages[0].role == MessageRole.SYSTEM
        assert messages[0].content == "Be brief"
        assert outcome.chat_turn is None

    @pytest.mark.asyncio
    async def test_mock_response_skips_llm(self, make_ctx, llm) -> None:
        """A configured mock response short-circuits the model."""
        agent = as_node(node("a", "agent", includeChatHistory=True))
        ctx = make_ctx(services=_services(llm, mock_agent_response='{"a": {"score": 9}}'))

        outcome = await AgentNodeHandler().execute(agent, ctx)

        assert outcome.output == {"score": 9}
        assert outcome.chat_turn == {"user": "Process the input", "assistant": '{"score": 9}'}
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_tool_loop(self, make_ctx, mcp) -> None:
        """Tool calls are executed and fed back until the model answers."""
        llm = MockLLMProvider(responses=["", "Found a and b"], tool_calls_sequence=[[_search_call()], None])
        agent = as_node(node("a", "agent", instructions="Look up tides", mcpServers=["srv"]))

        outcome = await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm, mcp)))

        assert outcome.output == "Found a and b"
        assert mcp.calls == [("srv", "search", {"q": "tides"})]
        assert outcome.tool_calls[0].result == {"hits": ["a", "b"]}
        assert outcome.tool_calls[0].server == "srv"
        assert [t.name for t in llm.received_tools[0]] == ["search", "fetch"]
        tool_message = llm.received_messages[1][-1]
        assert tool_message.role == MessageRole.TOOL
        assert json.loads(tool_message.content) == {"hits": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_single_tool_reference(self, make_ctx, mcp) -> None:
        """serverId:toolName exposes just that tool."""
        llm = MockLLMProvider(response="done")
        agent = as_node(node("a", "agent", mcpTools=["srv:fetch"]))

        await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm, mcp)))

        assert [t.name for t in llm.received_tools[0]] == ["fetch"]

    @pytest.mark.asyncio
    async def test_duplicate_tool_names_are_prefixed(self, make_ctx) -> None:
        """Same-named tools from two servers stay distinguishable."""
        mcp = FakeMCPInvoker(tools={"one": [make_tool("search", "one")], "two": [make_tool("search", "two")]})
        llm = MockLLMProvider(
            responses=["", "ok"],
            tool_calls_sequence=[[_search_call(name="two__search")], None],
        )
        agent = as_node(node("a", "agent", mcpServers=["one", {"serverId": "two"}]))

        await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm, mcp)))

        assert [t.name for t in llm.received_tools[0]] == ["search", "two__search"]
        assert mcp.calls == [("two", "search", {"q": "tides"})]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self, make_ctx, mcp) -> None:
        """A hallucinated tool name yields an error result, not a failure."""
        llm = MockLLMProvider(responses=["", "sorry"], tool_calls_sequence=[[_search_call(name="nope")], None])
        agent = as_node(node("a", "agent", mcpServers=["srv"]))

        outcome = await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm, mcp)))

        assert outcome.tool_calls[0].is_error is True
        assert outcome.tool_calls[0].result == "Unknown tool: nope"
        assert mcp.calls == []

    @pytest.mark.asyncio
    async def test_tool_rounds_are_bounded(self, make_ctx, mcp) -> None:
        """The loop stops after maxToolRounds rounds."""
        llm = MockLLMProvider(
            response="still going",
            tool_calls_sequence=[[_search_call(f"c{i}")] for i in range(10)],
        )
        agent = as_node(node("a", "agent", mcpServers=["srv"], maxToolRounds=2))

        outcome = await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm, mcp)))

        assert llm.call_count == 3
        assert len(outcome.tool_calls) == 2
        assert outcome.output == "still going"

    @pytest.mark.asyncio
    async def test_tool_authorization_suspends(self, make_ctx) -> None:
        """A tool needing OAuth pauses the node with pendingAuth."""
        mcp = FakeMCPInvoker(tools={"srv": [make_tool("search")]}, requires_auth={"search"})
        llm = MockLLMProvider(tool_calls_sequence=[[_search_call()]])
        agent = as_node(node("a", "agent", mcpServers=["srv"]))

        outcome = await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm, mcp)))

        assert outcome.pending_auth.kind == "oauth"
        assert outcome.pending_auth.auth_id == "auth-srv"
        assert outcome.pending_auth.auth_url == "https://auth.example.com/start"
        assert outcome.pending_auth.node_id == "a"

    @pytest.mark.asyncio
    async def test_tools_without_client(self, make_ctx, llm) -> None:
        """Attaching servers without an MCP client fails the node."""
        agent = as_node(node("a", "agent", mcpServers=["srv"]))

        with pytest.raises(NodeExecutionError, match="no MCP client"):
            await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm)))

    @pytest.mark.asyncio
    async def test_json_schema_output(self, make_ctx) -> None:
        """Schema-constrained output is parsed and validated."""
        llm = MockLLMProvider(response='```json\n{"name": "Ada"}\n```')
        agent = as_node(node("a", "agent", jsonSchema=PERSON_SCHEMA))

        outcome = await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm)))

        assert outcome.output == {"name": "Ada"}
        assert "conforms to this schema" in llm.received_messages[0][0].content

    @pytest.mark.asyncio
    async def test_json_schema_violation(self, make_ctx) -> None:
        """Output that breaks the schema fails the node."""
        llm = MockLLMProvider(response='{"age": 3}')
        agent = as_node(node("a", "agent", jsonSchema=PERSON_SCHEMA))

        with pytest.raises(NodeExecutionError, match="does not match jsonSchema"):
            await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm)))

    @pytest.mark.asyncio
    async def test_json_format_keeps_text_on_failure(self, make_ctx) -> None:
        """outputFormat json without a schema falls back to text."""
        llm = MockLLMProvider(response="not json at all")
        agent = as_node(node("a", "agent", outputFormat="json"))

        outcome = await AgentNodeHandler().execute(agent, make_ctx(services=_services(llm)))

        assert outcome.output == "not json at all"

    @pytest.mark.asyncio
    async def test_chat_history(self, make_ctx, llm) -> None:
        """Earlier turns are replayed and this turn is returned."""
        agent = as_node(node("a", "agent", instructions="And now?", includeChatHistory=True))
        ctx = make_ctx()
        ctx.scope.append_chat("hello", "hi there")

        outcome = await AgentNodeHandler().execute(agent, ctx)

        contents = [(m.role, m.content) for m in llm.received_messages[0]]
        assert contents == [
            (MessageRole.USER, "hello"),
            (MessageRole.ASSISTANT, "hi there"),
            (MessageRole.USER, "And now?"),
        ]
        assert outcome.chat_turn == {"user": "And now?", "assistant": "And now?"}

    @pytest.mark.asyncio
    async def test_unknown_model(self, make_ctx) -> None:
        """Models no provider serves fail the node."""
        services = NodeServices(llm_factory=build_default_registry().create_provider)
        agent = as_node(node("a", "agent", model="gemini-pro"))

        with pytest.raises(NodeExecutionError, match="Agent execution failed: Model 'gemini-pro'"):
            await AgentNodeHandler().execute(agent, make_ctx(services=services))


class TestExtractNode:
    """Tests for ExtractNodeHandler."""

    @pytest.mark.asyncio
    async def test_extracts_from_last_output(self, make_ctx) -> None:
        """The previous output is appended to the prompt and the reply validated."""
        llm = MockLLMProvider(response='Sure: {"name": "Grace"}')
        extract = as_node(node("x", "extract", instructions="Find the person", jsonSchema=PERSON_SCHEMA))
        ctx = make_ctx(last_output="Grace Hopper wrote the first compiler.", services=_services(llm))

        outcome = await ExtractNodeHandler().execute(extract, ctx)

        assert outcome.output == {"name": "Grace"}
        prompt = llm.received_messages[0][-1].content
        assert prompt.startswith("Find the person")
        assert "Data to extract from:\nGrace Hopper" in prompt

    @pytest.mark.asyncio
    async def test_input_is_truncated(self, make_ctx) -> None:
        """Long inputs are cut to the configured size."""
        llm = MockLLMProvider(response='{"name": "x"}')
        extract = as_node(node("x", "extract", jsonSchema=PERSON_SCHEMA))
        ctx = make_ctx(
            last_output="y" * 100,
            services=_services(llm),
            config=EngineConfig(extract_max_input_chars=10),
        )

        await ExtractNodeHandler().execute(extract, ctx)

        assert llm.received_messages[0][-1].content.endswith("\n" + "y" * 10)

    @pytest.mark.asyncio
    async def test_schema_violation(self, make_ctx) -> None:
        """Replies that break the schema fail the node."""
        llm = MockLLMProvider(response='{"nickname": "Amazing Grace"}')
        extract = as_node(node("x", "extract", jsonSchema=PERSON_SCHEMA))

        with pytest.raises(NodeExecutionError, match="does not match jsonSchema"):
            await ExtractNodeHandler().execute(extract, make_ctx(services=_services(llm)))

    @pytest.mark.asyncio
    async def test_not_json(self, make_ctx) -> None:
        """Prose replies fail the node."""
        llm = MockLLMProvider(response="I found nobody.")
        extract = as_node(node("x", "extract", jsonSchema=PERSON_SCHEMA))

        with pytest.raises(NodeExecutionError, match="did not return valid JSON"):
            await ExtractNodeHandler().execute(extract, make_ctx(services=_services(llm)))

    @pytest.mark.asyncio
    async def test_bad_schema(self, make_ctx, llm) -> None:
        """An unparseable schema fails before any model call."""
        extract = as_node(node("x", "extract", jsonSchema="{nope"))

        with pytest.raises(NodeExecutionError, match="not valid JSON"):
            await ExtractNodeHandler().execute(extract, make_ctx())
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_mock_response(self, make_ctx, llm) -> None:
        """Mock responses are validated like real ones."""
        extract = as_node(node("x", "extract", jsonSchema=PERSON_SCHEMA))
        ctx = make_ctx(services=_services(llm, mock_agent_response='{"x": {"name": "Mock"}}'))

        outcome = await ExtractNodeHandler().execute(extract, ctx)

        assert outcome.output == {"name": "Mock"}
        assert llm.call_count == 0
