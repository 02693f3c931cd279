"""Repository interfaces.

The engine reads and writes documents only through these interfaces; the
document store behind them is a deployment choice.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from flowchord.core.types import Execution, Workflow
from flowchord.storage.models import ApprovalRecord, Checkpoint


class IWorkflowRepository(ABC):
    """Workflow repository interface."""

    @abstractmethod
    async def save(self, workflow: Workflow) -> Workflow:
        """Create or replace a workflow."""
        pass

    @abstractmethod
    async def get_by_id(self, workflow_id: str) -> Workflow | None:
        """Get workflow by ID."""
        pass

    @abstractmethod
    async def list_all(self) -> list[Workflow]:
        """List all workflows."""
        pass

    @abstractmethod
    async def delete(self, workflow_id: str) -> bool:
        """Delete workflow."""
        pass


class IExecutionRepository(ABC):
    """Execution repository interface."""

    @abstractmethod
    async def create(self, execution: Execution) -> Execution:
        """Create execution."""
        pass

    @abstractmethod
    async def get_by_id(self, execution_id: str) -> Execution | None:
        """Get execution by ID."""
        pass

    @abstractmethod
    async def list_by_workflow(self, workflow_id: str) -> list[Execution]:
        """List executions by workflow."""
        pass

    @abstractmethod
    async def update(self, execution: Execution) -> Execution:
        """Update execution."""
        pass


class IApprovalStore(ABC):
    """Approval record store interface."""

    @abstractmethod
    async def create(self, record: ApprovalRecord) -> ApprovalRecord:
        pass

    @abstractmethod
    async def get_by_id(self, approval_id: str) -> ApprovalRecord | None:
        pass

    @abstractmethod
    async def update(self, record: ApprovalRecord) -> ApprovalRecord:
        pass

    @abstractmethod
    async def list_pending(self) -> list[ApprovalRecord]:
        pass

    @abstractmethod
    async def list_by_execution(self, execution_id: str) -> list[ApprovalRecord]:
        pass


class ICheckpointStore(ABC):
    """Durable store for suspended executions."""

    @abstractmethod
    async def save(self, checkpoint: Checkpoint) -> None:
        """Persist a checkpoint, replacing any previous one for the execution."""
        pass

    @abstractmethod
    async def load(self, execution_id: str) -> Checkpoint | None:
        pass

    @abstractmethod
    async def delete(self, execution_id: str) -> bool:
        pass

    @abstractmethod
    async def list_ids(self) -> list[str]:
        pass
