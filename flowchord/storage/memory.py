"""In-memory repository implementations.

Documents are stored as deep copies so callers never share mutable state
with the store, matching the behavior of an external document database.
"""

from __future__ import annotations

import asyncio

from flowchord.core.types import Execution, Workflow
from flowchord.storage.interfaces import (
    IApprovalStore,
    ICheckpointStore,
    IExecutionRepository,
    IWorkflowRepository,
)
from flowchord.storage.models import ApprovalRecord, ApprovalStatus, Checkpoint


class InMemoryWorkflowRepository(IWorkflowRepository):
    def __init__(self) -> None:
        self._items: dict[str, Workflow] = {}
        self._lock = asyncio.Lock()

    async def save(self, workflow: Workflow) -> Workflow:
        async with self._lock:
            self._items[workflow.id] = workflow.model_copy(deep=True)
            return workflow

    async def get_by_id(self, workflow_id: str) -> Workflow | None:
        item = self._items.get(workflow_id)
        return item.model_copy(deep=True) if item else None

    async def list_all(self) -> list[Workflow]:
        return [w.model_copy(deep=True) for w in self._items.values()]

    async def delete(self, workflow_id: str) -> bool:
        async with self._lock:
            return self._items.pop(workflow_id, None) is not None


class InMemoryExecutionRepository(IExecutionRepository):
    def __init__(self) -> None:
        self._items: dict[str, Execution] = {}
        self._lock = asyncio.Lock()

    async def create(self, execution: Execution) -> Execution:
        async with self._lock:
            self._items[execution.id] = execution.model_copy(deep=True)
            return execution

    async def get_by_id(self, execution_id: str) -> Execution | None:
        item = self._items.get(execution_id)
        return item.model_copy(deep=True) if item else None

    async def list_by_workflow(self, workflow_id: str) -> list[Execution]:
        items = [e for e in self._items.values() if e.workflow_id == workflow_id]
        items.sort(key=lambda e: e.started_at, reverse=True)
        return [e.model_copy(deep=True) for e in items]

    async def update(self, execution: Execution) -> Execution:
        async with self._lock:
            self._items[execution.id] = execution.model_copy(deep=True)
            return execution


class InMemoryApprovalStore(IApprovalStore):
    def __init__(self) -> None:
        self._items: dict[str, ApprovalRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: ApprovalRecord) -> ApprovalRecord:
        async with self._lock:
            self._items[record.approval_id] = record.model_copy(deep=True)
            return record

    async def get_by_id(self, approval_id: str) -> ApprovalRecord | None:
        item = self._items.get(approval_id)
        return item.model_copy(deep=True) if item else None

    async def update(self, record: ApprovalRecord) -> ApprovalRecord:
        async with self._lock:
            self._items[record.approval_id] = record.model_copy(deep=True)
            return record

    async def list_pending(self) -> list[ApprovalRecord]:
        return [
            r.model_copy(deep=True)
            for r in self._items.values()
            if r.status == ApprovalStatus.PENDING
        ]

    async def list_by_execution(self, execution_id: str) -> list[ApprovalRecord]:
        return [
            r.model_copy(deep=True)
            for r in self._items.values()
            if r.execution_id == execution_id
        ]


class InMemoryCheckpointStore(ICheckpointStore):
    def __init__(self) -> None:
        self._items: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def save(self, checkpoint: Checkpoint) -> None:
        async with self._lock:
            self._items[checkpoint.execution_id] = checkpoint.model_dump_json(by_alias=True)

    async def load(self, execution_id: str) -> Checkpoint | None:
        raw = self._items.get(execution_id)
        return Checkpoint.model_validate_json(raw) if raw else None

    async def delete(self, execution_id: str) -> bool:
        async with self._lock:
            return self._items.pop(execution_id, None) is not None

    async def list_ids(self) -> list[str]:
        return list(self._items)
