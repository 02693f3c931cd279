"""Core type definitions for FlowChord.

Workflow documents, execution records and handler outcomes. All types use
Pydantic and serialize with camelCase aliases so documents produced by the
visual builder validate without translation.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class CamelModel(BaseModel):
    """Base model accepting both snake_case and camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe dict using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class NodeType(str, Enum):
    """Closed set of node kinds the engine knows how to run."""

    START = "start"
    AGENT = "agent"
    MCP = "mcp"
    HTTP = "http"
    TRANSFORM = "transform"
    SET_STATE = "set-state"
    IF_ELSE = "if-else"
    WHILE = "while"
    USER_APPROVAL = "user-approval"
    EXTRACT = "extract"
    END = "end"
    NOTE = "note"

    @property
    def branches(self) -> tuple[str, ...]:
        """Branch vocabulary of a routing node; empty for non-branching kinds."""
        return BRANCH_VOCABULARY.get(self, ())

    @property
    def is_branching(self) -> bool:
        return self in BRANCH_VOCABULARY


BRANCH_VOCABULARY: dict[NodeType, tuple[str, ...]] = {
    NodeType.IF_ELSE: ("if", "else"),
    NodeType.WHILE: ("continue", "break"),
    NodeType.USER_APPROVAL: ("approve", "reject"),
}

# Alternative spellings produced by the builder's handles and edge labels
BRANCH_SYNONYMS: dict[NodeType, dict[str, str]] = {
    NodeType.IF_ELSE: {
        "if": "if", "true": "if", "yes": "if", "then": "if",
        "else": "else", "false": "else", "no": "else",
    },
    NodeType.WHILE: {
        "continue": "continue", "true": "continue", "yes": "continue",
        "loop": "continue", "next": "continue",
        "break": "break", "false": "break", "no": "break", "exit": "break",
        "stop": "break", "end": "break", "complete": "break",
    },
    NodeType.USER_APPROVAL: {
        "approve": "approve", "approved": "approve", "yes": "approve",
        "reject": "reject", "rejected": "reject", "no": "reject",
    },
}


LEGACY_TYPE_NAMES: dict[str, str] = {
    "if / else": "if-else",
    "ifelse": "if-else",
    "setstate": "set-state",
    "set_state": "set-state",
    "user_approval": "user-approval",
    "approval": "user-approval",
}


class ExecutionStatus(str, Enum):
    """Execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING_AUTH = "waiting-auth"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class NodeStatus(str, Enum):
    """Per-node status inside one execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING_AUTHORIZATION = "pending-authorization"
    SKIPPED = "skipped"


class Node(CamelModel):
    """A node of the workflow graph."""

    id: str
    type: NodeType
    data: dict[str, Any] = Field(default_factory=dict)
    position: dict[str, float] | None = None

    @model_validator(mode="before")
    @classmethod
    def _resolve_type(cls, values: Any) -> Any:
        """The builder may store the real kind in data.nodeType."""
        if isinstance(values, dict):
            data = values.get("data") or {}
            kind = data.get("nodeType") if isinstance(data, dict) else None
            kind = kind or values.get("type")
            if isinstance(kind, str):
                kind = LEGACY_TYPE_NAMES.get(kind.strip().lower(), kind.strip().lower())
            values = {**values, "type": kind}
        return values

    @property
    def name(self) -> str | None:
        name = self.data.get("nodeName") or self.data.get("label")
        return name if isinstance(name, str) and name.strip() else None


class Edge(CamelModel):
    """Directed connection between two nodes."""

    id: str = Field(default_factory=lambda: new_id("edge"))
    source: str
    target: str
    label: str | None = None
    source_handle: str | None = None

    def branch_for(self, node_type: NodeType) -> str | None:
        """Canonical branch this edge carries when leaving a node of `node_type`.

        Returns None when the edge has no label from the node's vocabulary.
        """
        synonyms = BRANCH_SYNONYMS.get(node_type)
        if not synonyms:
            return None
        for raw in (self.source_handle, self.label):
            if raw and raw.strip().lower() in synonyms:
                return synonyms[raw.strip().lower()]
        return None


class Workflow(CamelModel):
    """Immutable-per-run workflow definition."""

    id: str
    name: str = ""
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def get_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def start_nodes(self) -> list[Node]:
        return [n for n in self.nodes if n.type == NodeType.START]

    @property
    def start_node(self) -> Node:
        starts = self.start_nodes
        if len(starts) != 1:
            raise ValueError(f"Workflow '{self.id}' has {len(starts)} start nodes")
        return starts[0]

    def outgoing(self, node_id: str) -> list[Edge]:
        """Outgoing edges of a node in definition order."""
        return [e for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.target == node_id]

    def without_dangling_edges(self) -> Workflow:
        """Copy with edges that reference missing nodes removed."""
        ids = {n.id for n in self.nodes}
        edges = [e for e in self.edges if e.source in ids and e.target in ids]
        return self.model_copy(update={"edges": edges})


class PendingAuth(CamelModel):
    """External action a suspended node is waiting for."""

    tool_name: str
    message: str
    auth_id: str
    auth_url: str | None = None
    node_id: str | None = None
    kind: str = "approval"  # "approval" | "oauth"


class ToolCall(CamelModel):
    """A tool invocation made while running a node."""

    id: str = Field(default_factory=lambda: new_id("call"))
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    server: str | None = None
    is_error: bool = False


class NodeExecutionResult(CamelModel):
    """Per-node-per-execution record."""

    node_id: str
    node_type: NodeType
    status: NodeStatus = NodeStatus.RUNNING
    output: Any = None
    error: str | None = None
    tool_calls: list[ToolCall] | None = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    pending_auth: PendingAuth | None = None
    branch: str | None = None
    iteration: int | None = None
    duration_ms: int | None = None


class Execution(CamelModel):
    """One run instance of a workflow."""

    id: str = Field(default_factory=lambda: new_id("exec"))
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    error: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    node_results: dict[str, NodeExecutionResult] = Field(default_factory=dict)
    history: list[NodeExecutionResult] = Field(default_factory=list)
    pending_auth: PendingAuth | None = None
    current_node_id: str | None = None


class NodeOutcome(BaseModel):
    """What a node handler hands back to the graph walker."""

    output: Any = None
    branch: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    pending_auth: PendingAuth | None = None
    variables: dict[str, Any] = Field(default_factory=dict)
    updates_last_output: bool = True
    terminal: bool = False
    chat_turn: dict[str, str] | None = None


class ResumeAction(str, Enum):
    """Decision delivered to a suspended execution."""

    APPROVE = "approve"
    REJECT = "reject"
    AUTHORIZED = "authorized"
    FAILED = "failed"


class ResumeDecision(CamelModel):
    """External signal that wakes a waiting execution."""

    action: ResumeAction
    user_id: str | None = None
    comment: str | None = None
    auth_id: str | None = None
    reason: str | None = None
