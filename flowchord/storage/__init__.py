"""Storage interfaces, documents and built-in implementations."""

from flowchord.storage.interfaces import (
    IApprovalStore,
    ICheckpointStore,
    IExecutionRepository,
    IWorkflowRepository,
)
from flowchord.storage.json_file import JSONFileCheckpointStore
from flowchord.storage.memory import (
    InMemoryApprovalStore,
    InMemoryCheckpointStore,
    InMemoryExecutionRepository,
    InMemoryWorkflowRepository,
)
from flowchord.storage.models import ApprovalRecord, ApprovalStatus, Checkpoint

__all__ = [
    "IApprovalStore",
    "ICheckpointStore",
    "IExecutionRepository",
    "IWorkflowRepository",
    "JSONFileCheckpointStore",
    "InMemoryApprovalStore",
    "InMemoryCheckpointStore",
    "InMemoryExecutionRepository",
    "InMemoryWorkflowRepository",
    "ApprovalRecord",
    "ApprovalStatus",
    "Checkpoint",
]
