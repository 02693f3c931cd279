"""Execution endpoints: status, stop, resume and event replay."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from flowchord.api.deps import get_execution_service
from flowchord.api.dtos import ResumeRequest
from flowchord.api.routes.workflows import SSE_HEADERS
from flowchord.core.types import ResumeDecision
from flowchord.services.execution_service import ExecutionService

router = APIRouter(prefix="/api/executions", tags=["executions"])

Service = Annotated[ExecutionService, Depends(get_execution_service)]


@router.get("/{execution_id}")
async def get_execution(execution_id: str, service: Service) -> dict:
    execution = await service.get_execution(execution_id)
    return execution.to_dict()


@router.post("/{execution_id}/stop")
async def stop_execution(execution_id: str, service: Service) -> dict:
    """Request cancellation; a waiting execution is cancelled immediately."""
    execution = await service.stop(execution_id)
    return execution.to_dict()


@router.post("/{execution_id}/resume")
async def resume_execution(execution_id: str, body: ResumeRequest, service: Service) -> dict:
    """Deliver an authorization decision to a waiting execution.

    Resuming an execution that is not waiting returns it unchanged.
    """
    decision = ResumeDecision(
        action=body.action,
        auth_id=body.auth_id,
        user_id=body.user_id,
        comment=body.comment,
        reason=body.reason,
    )
    execution = await service.resume(execution_id, decision)
    return execution.to_dict()


@router.get("/{execution_id}/events")
async def stream_execution_events(
    execution_id: str,
    service: Service,
    after: int = Query(-1, ge=-1, description="Replay events with a greater seq"),
) -> StreamingResponse:
    """Replay and follow an execution's events as SSE."""
    stream = service.get_stream(execution_id)
    if stream is None:
        raise HTTPException(status_code=404, detail=f"No event stream for execution '{execution_id}'")
    return StreamingResponse(
        stream.iter_sse(after), media_type="text/event-stream", headers=SSE_HEADERS
    )
