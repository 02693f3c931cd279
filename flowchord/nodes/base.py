"""Node handler interface and the context handed to every handler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx

from flowchord.core.config import EngineConfig
from flowchord.core.expressions import ExpressionResolver
from flowchord.core.scope import Scope
from flowchord.core.types import Node, NodeOutcome, NodeType, ResumeDecision, Workflow
from flowchord.errors.exceptions import ConfigurationError
from flowchord.llm.base import BaseLLMProvider
from flowchord.logging import FlowChordLogger, get_logger
from flowchord.protocols.mcp.client import MCPToolInvoker
from flowchord.storage.interfaces import IApprovalStore


def _default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(follow_redirects=True)


@dataclass
class NodeServices:
    """External capabilities handlers may call.

    Attributes:
        llm_factory: Builds a provider for a model name.
        default_model: Model used when an agent node names none.
        mcp: MCP tool invoker, if any servers are configured.
        http_client_factory: Returns a fresh httpx client per request.
        approval_store: Where user-approval nodes record their requests.
        mock_agent_response: Canned agent output; a JSON object may key it
            by node id or name with a "default" fallback.
    """

    llm_factory: Callable[[str], BaseLLMProvider] | None = None
    default_model: str = "gpt-4o-mini"
    mcp: MCPToolInvoker | None = None
    http_client_factory: Callable[[], httpx.AsyncClient] = _default_http_client
    approval_store: IApprovalStore | None = None
    mock_agent_response: str | None = None


@dataclass
class NodeContext:
    """Read access to the run plus the services a handler may use.

    Handlers never write to `scope` directly; state changes travel back in
    the NodeOutcome and the graph walker applies them. While nodes are the
    exception: they own their loop frame.
    """

    execution_id: str
    workflow: Workflow
    scope: Scope
    config: EngineConfig
    services: NodeServices
    resolver: ExpressionResolver = field(default_factory=ExpressionResolver)
    resume: ResumeDecision | None = None
    console: FlowChordLogger = field(default_factory=get_logger)

    def interpolate(self, template: Any) -> str:
        return self.resolver.interpolate(template, self.scope)

    def interpolate_value(self, value: Any) -> Any:
        return self.resolver.interpolate_value(value, self.scope)

    def evaluate_condition(self, expression: str) -> bool:
        return self.resolver.evaluate_condition(expression, self.scope)

    def get_llm(self, model: str | None) -> BaseLLMProvider:
        if self.services.llm_factory is None:
            raise ConfigurationError("No LLM provider is configured")
        return self.services.llm_factory(model or self.services.default_model)


class BaseNodeHandler(ABC):
    """Strategy for one node kind.

    Example:
        >>> class EchoHandler(BaseNodeHandler):
        ...     node_type = NodeType.TRANSFORM
        ...     async def execute(self, node, ctx):
        ...         return NodeOutcome(output=ctx.scope.last_output)
    """

    node_type: ClassVar[NodeType]

    @abstractmethod
    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        """Run the node.

        Raises:
            NodeExecutionError: The node failed; the message reaches the caller verbatim.
            InputValidationError: Start node input did not match its declaration.
        """
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.node_type.value!r})"
