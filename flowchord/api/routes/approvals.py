"""User-approval endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from flowchord.api.deps import get_execution_service
from flowchord.api.dtos import ApprovalActionRequest, ApprovalResponse
from flowchord.services.execution_service import ExecutionService

router = APIRouter(prefix="/api/approval", tags=["approvals"])

Service = Annotated[ExecutionService, Depends(get_execution_service)]


@router.get("/{approval_id}")
async def get_approval(approval_id: str, service: Service) -> dict:
    record = await service.get_approval(approval_id)
    return record.to_dict()


@router.post("/{approval_id}")
async def resolve_approval(
    approval_id: str, body: ApprovalActionRequest, service: Service
) -> dict:
    """Approve or reject, then report the record and the resumed execution."""
    record, execution = await service.resolve_approval(
        approval_id, body.action, user_id=body.user_id, comment=body.comment
    )
    return ApprovalResponse(approval=record, execution=execution).to_dict()
