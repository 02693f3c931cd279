"""Pytest configuration and fixtures for FlowChord tests."""

from __future__ import annotations

import json
from typing import Any, Callable

import pytest

from flowchord.core.config import EngineConfig
from flowchord.core.executor import WorkflowExecutor
from flowchord.core.expressions import ExpressionResolver
from flowchord.core.resume import ResumeController
from flowchord.core.scope import Scope
from flowchord.core.types import Node, Workflow
from flowchord.errors.exceptions import AuthorizationRequiredError, ConfigurationError
from flowchord.llm.mock import MockLLMProvider
from flowchord.logging import FlowChordLogger
from flowchord.nodes.base import NodeContext, NodeServices
from flowchord.protocols.mcp.client import MCPToolInvoker
from flowchord.protocols.mcp.types import MCPTool, MCPToolResult
from flowchord.storage.memory import (
    InMemoryApprovalStore,
    InMemoryCheckpointStore,
    InMemoryExecutionRepository,
)


class FakeMCPInvoker(MCPToolInvoker):
    """In-process MCP invoker with scripted tools and results.

    `results` maps a tool name to a string, a JSON-able value, an
    MCPToolResult or a callable taking the arguments.
    """

    def __init__(
        self,
        tools: dict[str, list[MCPTool]] | None = None,
        results: dict[str, Any] | None = None,
        requires_auth: set[str] | None = None,
    ) -> None:
        self.tools = tools or {}
        self.results = results or {}
        self.requires_auth = set(requires_auth or ())
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    async def list_tools(self, server_id: str) -> list[MCPTool]:
        if server_id not in self.tools:
            raise ConfigurationError(f"MCP server '{server_id}' is not configured")
        return self.tools[server_id]

    async def call_tool(
        self,
        server_id: str,
        name: str,
        arguments: dict[str, Any] | None = None,
    ) -> MCPToolResult:
        self.calls.append((server_id, name, dict(arguments or {})))
        if name in self.requires_auth:
            raise AuthorizationRequiredError(
                f"Tool '{name}' requires authorization",
                tool_name=name,
                auth_id=f"auth-{server_id}",
                auth_url="https://auth.example.com/start",
            )
        result = self.results.get(name, "ok")
        if callable(result):
            result = result(arguments or {})
        if isinstance(result, MCPToolResult):
            return result
        if isinstance(result, str):
            return MCPToolResult(content=result)
        return MCPToolResult(content=json.dumps(result), structured=result)


def make_tool(name: str, server_id: str = "srv", description: str = "") -> MCPTool:
    return MCPTool(
        name=name,
        description=description or f"{name} tool",
        input_schema={"type": "object", "properties": {"q": {"type": "string"}}},
        server_id=server_id,
    )


# Workflow builders


def node(node_id: str, type: str, **data: Any) -> dict[str, Any]:
    return {"id": node_id, "type": type, "data": data}


def edge(source: str, target: str, label: str | None = None, handle: str | None = None) -> dict[str, Any]:
    return {
        "id": f"{source}->{target}:{label or handle or ''}",
        "source": source,
        "target": target,
        "label": label,
        "sourceHandle": handle,
    }


def build_workflow(
    nodes: list[dict[str, Any]],
    edges: list[dict[str, Any]],
    workflow_id: str = "wf-test",
) -> Workflow:
    return Workflow.model_validate(
        {"id": workflow_id, "name": workflow_id, "nodes": nodes, "edges": edges}
    )


def chain(*nodes: dict[str, Any], workflow_id: str = "wf-chain") -> Workflow:
    """Connect nodes in the given order with unlabeled edges."""
    edges = [edge(a["id"], b["id"]) for a, b in zip(nodes, nodes[1:])]
    return build_workflow(list(nodes), edges, workflow_id)


def approval_workflow(workflow_id: str = "wf-approval") -> Workflow:
    """start -> review -[approve]-> publish(end) / -[reject]-> discard(end)"""
    return build_workflow(
        [
            node("start", "start"),
            node("review", "user-approval", approvalMessage="Publish {{input.title}}?"),
            node("publish", "end", output="published {{input.title}}"),
            node("discard", "end", output="discarded"),
        ],
        [
            edge("start", "review"),
            edge("review", "publish", label="approve"),
            edge("review", "discard", label="reject"),
        ],
        workflow_id,
    )


# Fixtures


@pytest.fixture
def quiet_console() -> FlowChordLogger:
    return FlowChordLogger(enabled=False)


@pytest.fixture
def llm() -> MockLLMProvider:
    """Echoes the last user message unless scripted."""
    return MockLLMProvider()


@pytest.fixture
def mcp() -> FakeMCPInvoker:
    return FakeMCPInvoker(
        tools={"srv": [make_tool("search"), make_tool("fetch")]},
        results={"search": {"hits": ["a", "b"]}, "fetch": "page body"},
    )


@pytest.fixture
def approval_store() -> InMemoryApprovalStore:
    return InMemoryApprovalStore()


@pytest.fixture
def execution_repo() -> InMemoryExecutionRepository:
    return InMemoryExecutionRepository()


@pytest.fixture
def checkpoint_store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture
def services(llm, mcp, approval_store) -> NodeServices:
    return NodeServices(
        llm_factory=lambda model: llm,
        mcp=mcp,
        approval_store=approval_store,
    )


@pytest.fixture
def make_executor(
    services, checkpoint_store, execution_repo, quiet_console
) -> Callable[..., WorkflowExecutor]:
    """Factory for executors sharing the test's stores, with config overrides."""

    def _factory(**config: Any) -> WorkflowExecutor:
        return WorkflowExecutor(
            config=EngineConfig(**config),
            services=services,
            checkpoint_store=checkpoint_store,
            execution_repo=execution_repo,
            console=quiet_console,
        )

    return _factory


@pytest.fixture
def executor(make_executor) -> WorkflowExecutor:
    return make_executor()


@pytest.fixture
def controller(executor) -> ResumeController:
    return ResumeController(executor)


@pytest.fixture
def make_ctx(services, quiet_console) -> Callable[..., NodeContext]:
    """Factory for handler contexts over a scope built from keyword data."""

    def _factory(
        input: dict[str, Any] | None = None,
        *,
        last_output: Any = None,
        outputs: dict[str, Any] | None = None,
        state: dict[str, Any] | None = None,
        config: EngineConfig | None = None,
        workflow: Workflow | None = None,
        **kwargs: Any,
    ) -> NodeContext:
        scope = Scope(input)
        scope.last_output = last_output
        scope.outputs.update(outputs or {})
        scope.state.update(state or {})
        return NodeContext(
            execution_id="exec-test",
            workflow=workflow or build_workflow([node("start", "start")], []),
            scope=scope,
            config=config or EngineConfig(),
            services=kwargs.pop("services", services),
            resolver=ExpressionResolver(),
            console=quiet_console,
            **kwargs,
        )

    return _factory


def as_node(raw: dict[str, Any]) -> Node:
    return Node.model_validate(raw)
