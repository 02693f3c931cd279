"""Request and response bodies for the HTTP API."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from flowchord.core.types import (
    CamelModel,
    Execution,
    NodeExecutionResult,
    PendingAuth,
    ResumeAction,
)
from flowchord.storage.models import ApprovalRecord


class ExecuteRequest(CamelModel):
    input: dict[str, Any] = Field(default_factory=dict)


class ExecuteResponse(CamelModel):
    success: bool
    execution_id: str
    status: str
    output: Any = None
    error: str | None = None
    node_results: dict[str, NodeExecutionResult] = Field(default_factory=dict)
    pending_auth: PendingAuth | None = None

    @classmethod
    def from_execution(cls, execution: Execution) -> ExecuteResponse:
        return cls(
            success=execution.status.value in ("completed", "waiting-auth"),
            execution_id=execution.id,
            status=execution.status.value,
            output=execution.output,
            error=execution.error,
            node_results=execution.node_results,
            pending_auth=execution.pending_auth,
        )


class ApprovalActionRequest(CamelModel):
    action: ResumeAction
    user_id: str | None = None
    comment: str | None = None


class ApprovalResponse(CamelModel):
    approval: ApprovalRecord
    execution: Execution | None = None


class ResumeRequest(CamelModel):
    action: ResumeAction = ResumeAction.AUTHORIZED
    auth_id: str | None = None
    user_id: str | None = None
    comment: str | None = None
    reason: str | None = None
