"""Execution record ownership and status transitions."""

from __future__ import annotations

import asyncio
from typing import Any

from flowchord.core.types import (
    Execution,
    ExecutionStatus,
    Node,
    NodeExecutionResult,
    NodeOutcome,
    NodeStatus,
    PendingAuth,
    utcnow,
)
from flowchord.errors.exceptions import InvalidStateTransitionError

ALLOWED_TRANSITIONS: dict[ExecutionStatus, set[ExecutionStatus]] = {
    ExecutionStatus.PENDING: {
        ExecutionStatus.RUNNING,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.RUNNING: {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.WAITING_AUTH,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.WAITING_AUTH: {
        ExecutionStatus.RUNNING,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.COMPLETED: set(),
    ExecutionStatus.FAILED: set(),
    ExecutionStatus.CANCELLED: set(),
}


def _elapsed_ms(result: NodeExecutionResult) -> int:
    end = result.completed_at or utcnow()
    return int((end - result.started_at).total_seconds() * 1000)


class ExecutionState:
    """Single source of truth for one execution and its node results.

    All mutations go through this object and are serialized by its lock, so
    concurrently running branches never interleave partial updates.
    """

    def __init__(self, execution: Execution) -> None:
        self.execution = execution
        self._lock = asyncio.Lock()

    @property
    def status(self) -> ExecutionStatus:
        return self.execution.status

    def _transition(self, target: ExecutionStatus) -> None:
        current = self.execution.status
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransitionError(current.value, target.value)
        self.execution.status = target

    async def mark_running(self) -> None:
        async with self._lock:
            self._transition(ExecutionStatus.RUNNING)
            self.execution.pending_auth = None

    async def node_started(self, node: Node, iteration: int | None = None) -> NodeExecutionResult:
        async with self._lock:
            result = NodeExecutionResult(
                node_id=node.id,
                node_type=node.type,
                status=NodeStatus.RUNNING,
                iteration=iteration,
            )
            self.execution.node_results[node.id] = result
            self.execution.current_node_id = node.id
            return result

    async def node_completed(self, result: NodeExecutionResult, outcome: NodeOutcome) -> None:
        async with self._lock:
            result.status = NodeStatus.COMPLETED
            result.output = outcome.output
            result.branch = outcome.branch
            result.tool_calls = outcome.tool_calls or None
            result.completed_at = utcnow()
            result.duration_ms = _elapsed_ms(result)
            self.execution.history.append(result)

    async def node_failed(self, result: NodeExecutionResult, error: str) -> None:
        async with self._lock:
            result.status = NodeStatus.FAILED
            result.error = error
            result.completed_at = utcnow()
            result.duration_ms = _elapsed_ms(result)
            self.execution.history.append(result)

    async def node_paused(
        self,
        result: NodeExecutionResult,
        outcome: NodeOutcome,
    ) -> None:
        async with self._lock:
            result.status = NodeStatus.PENDING_AUTHORIZATION
            result.output = outcome.output
            result.pending_auth = outcome.pending_auth
            result.tool_calls = outcome.tool_calls or None

    async def complete(self, output: Any) -> None:
        async with self._lock:
            self._transition(ExecutionStatus.COMPLETED)
            self.execution.output = output
            self.execution.completed_at = utcnow()
            self.execution.current_node_id = None

    async def fail(self, error: str) -> None:
        async with self._lock:
            self._transition(ExecutionStatus.FAILED)
            self.execution.error = error
            self.execution.completed_at = utcnow()
            self.execution.pending_auth = None

    async def suspend(self, node_id: str, pending: PendingAuth) -> None:
        async with self._lock:
            self._transition(ExecutionStatus.WAITING_AUTH)
            self.execution.pending_auth = pending
            self.execution.current_node_id = node_id

    async def cancel(self) -> None:
        async with self._lock:
            self._transition(ExecutionStatus.CANCELLED)
            self.execution.completed_at = utcnow()
            self.execution.pending_auth = None
            self.execution.current_node_id = None
