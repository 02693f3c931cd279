"""FlowChord core components."""

from flowchord.core.config import EngineConfig
from flowchord.core.events import EventBus, EventStream, EventType, ExecutionEvent
from flowchord.core.expressions import ExpressionResolver
from flowchord.core.scope import Scope
from flowchord.core.structured import OutputSchema
from flowchord.core.types import (
    Edge,
    Execution,
    ExecutionStatus,
    Node,
    NodeExecutionResult,
    NodeOutcome,
    NodeStatus,
    NodeType,
    PendingAuth,
    ResumeAction,
    ResumeDecision,
    ToolCall,
    Workflow,
)
from flowchord.core.validation import ValidationReport, prepare_workflow, validate_workflow

__all__ = [
    "EngineConfig",
    "EventBus",
    "EventStream",
    "EventType",
    "ExecutionEvent",
    "ExpressionResolver",
    "Scope",
    "OutputSchema",
    "Edge",
    "Execution",
    "ExecutionStatus",
    "Node",
    "NodeExecutionResult",
    "NodeOutcome",
    "NodeStatus",
    "NodeType",
    "PendingAuth",
    "ResumeAction",
    "ResumeDecision",
    "ToolCall",
    "Workflow",
    "ValidationReport",
    "prepare_workflow",
    "validate_workflow",
]
