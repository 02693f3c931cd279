"""Persisted documents owned by the storage layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from flowchord.core.types import CamelModel, Execution, PendingAuth, Workflow, new_id, utcnow


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalRecord(CamelModel):
    """Human approval request raised by a user-approval node."""

    approval_id: str = Field(default_factory=lambda: new_id("approval"))
    execution_id: str
    workflow_id: str
    node_id: str
    message: str = ""
    status: ApprovalStatus = ApprovalStatus.PENDING
    user_id: str | None = None
    comment: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None or not self.is_pending:
            return False
        return (now or utcnow()) >= self.expires_at


class Checkpoint(CamelModel):
    """Everything needed to re-enter a suspended execution."""

    execution_id: str
    workflow: Workflow
    suspended_node_id: str
    frontier: list[str] = Field(default_factory=list)
    scope: dict[str, Any] = Field(default_factory=dict)
    execution: Execution
    pending_auth: PendingAuth
    steps: int = 0
    created_at: datetime = Field(default_factory=utcnow)
