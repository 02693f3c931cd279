"""Handler registry mapping every node kind to its handler."""

from __future__ import annotations

from collections.abc import Iterable

from flowchord.core.types import NodeType
from flowchord.errors.exceptions import ConfigurationError
from flowchord.nodes.agent import AgentNodeHandler
from flowchord.nodes.base import BaseNodeHandler
from flowchord.nodes.extract import ExtractNodeHandler
from flowchord.nodes.http import HTTPNodeHandler
from flowchord.nodes.logic import IfElseNodeHandler, UserApprovalNodeHandler, WhileNodeHandler
from flowchord.nodes.mcp import MCPNodeHandler
from flowchord.nodes.set_state import SetStateNodeHandler
from flowchord.nodes.start import StartNodeHandler
from flowchord.nodes.terminal import EndNodeHandler, NoteNodeHandler
from flowchord.nodes.transform import TransformNodeHandler


class HandlerRegistry:
    """Dispatch table from NodeType to handler.

    Construction fails unless every NodeType has a handler, so adding a
    node kind without a handler is caught at startup rather than mid-run.

    Example:
        >>> registry = HandlerRegistry.default()
        >>> registry.get(NodeType.HTTP)
        HTTPNodeHandler(type='http')
    """

    def __init__(self, handlers: Iterable[BaseNodeHandler]) -> None:
        self._handlers: dict[NodeType, BaseNodeHandler] = {}
        for handler in handlers:
            self._handlers[handler.node_type] = handler
        missing = [t.value for t in NodeType if t not in self._handlers]
        if missing:
            raise ConfigurationError(f"No handler registered for node types: {missing}")

    @classmethod
    def default(cls) -> HandlerRegistry:
        return cls(
            [
                StartNodeHandler(),
                AgentNodeHandler(),
                MCPNodeHandler(),
                HTTPNodeHandler(),
                TransformNodeHandler(),
                SetStateNodeHandler(),
                IfElseNodeHandler(),
                WhileNodeHandler(),
                UserApprovalNodeHandler(),
                ExtractNodeHandler(),
                EndNodeHandler(),
                NoteNodeHandler(),
            ]
        )

    def get(self, node_type: NodeType) -> BaseNodeHandler:
        return self._handlers[node_type]

    def replace(self, handler: BaseNodeHandler) -> None:
        """Swap the handler for one kind (used to stub handlers in tests)."""
        self._handlers[handler.node_type] = handler

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
