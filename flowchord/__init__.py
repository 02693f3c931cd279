"""FlowChord - Workflow execution engine for agent, tool and approval graphs.

FlowChord walks a node/edge workflow document, resolves `{{...}}`
expressions against the run's scope, dispatches each node to its handler,
streams ordered events and suspends on human approval or tool
authorization until resumed.

Example:
    >>> from flowchord import ExecutionService, Workflow
    >>> from flowchord.config import get_settings
    >>> service = ExecutionService.from_settings(get_settings())
    >>> await service.save_workflow(Workflow.model_validate(document))
    >>> execution = await service.execute(document["id"], {"topic": "rivers"})
    >>> print(execution.status, execution.output)
"""

__version__ = "0.1.0"

# Core exports
from flowchord.core.config import EngineConfig
from flowchord.core.events import EventBus, EventStream, EventType, ExecutionEvent
from flowchord.core.executor import WorkflowExecutor
from flowchord.core.expressions import ExpressionResolver
from flowchord.core.resume import ResumeController
from flowchord.core.types import (
    Edge,
    Execution,
    ExecutionStatus,
    Node,
    NodeType,
    PendingAuth,
    ResumeAction,
    ResumeDecision,
    Workflow,
)

# Error exports
from flowchord.errors.exceptions import (
    ExecutionNotFoundError,
    ExecutionNotResumableError,
    ExpressionError,
    FlowChordError,
    InputValidationError,
    NodeExecutionError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

# Handler exports
from flowchord.nodes import HandlerRegistry, NodeServices

# Service exports
from flowchord.services.execution_service import ExecutionService

__all__ = [
    # Version
    "__version__",
    # Core
    "EngineConfig",
    "EventBus",
    "EventStream",
    "EventType",
    "ExecutionEvent",
    "WorkflowExecutor",
    "ExpressionResolver",
    "ResumeController",
    "Edge",
    "Execution",
    "ExecutionStatus",
    "Node",
    "NodeType",
    "PendingAuth",
    "ResumeAction",
    "ResumeDecision",
    "Workflow",
    # Errors
    "ExecutionNotFoundError",
    "ExecutionNotResumableError",
    "ExpressionError",
    "FlowChordError",
    "InputValidationError",
    "NodeExecutionError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
    # Handlers
    "HandlerRegistry",
    "NodeServices",
    # Services
    "ExecutionService",
]
