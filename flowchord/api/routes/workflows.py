"""Workflow endpoints: document storage and execution."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from flowchord.api.deps import get_execution_service
from flowchord.api.dtos import ExecuteRequest, ExecuteResponse
from flowchord.core.types import Execution, Workflow
from flowchord.services.execution_service import ExecutionService

router = APIRouter(prefix="/api/workflows", tags=["workflows"])

Service = Annotated[ExecutionService, Depends(get_execution_service)]

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("")
async def save_workflow(workflow: Workflow, service: Service) -> dict:
    """Create or replace a workflow document."""
    saved = await service.save_workflow(workflow)
    return saved.to_dict()


@router.get("")
async def list_workflows(service: Service) -> dict:
    workflows = await service.list_workflows()
    return {"workflows": [w.to_dict() for w in workflows], "total": len(workflows)}


@router.get("/{workflow_id}")
async def get_workflow(workflow_id: str, service: Service) -> dict:
    workflow = await service.get_workflow(workflow_id)
    return workflow.to_dict()


@router.delete("/{workflow_id}", status_code=204)
async def delete_workflow(workflow_id: str, service: Service) -> None:
    await service.delete_workflow(workflow_id)


@router.post("/{workflow_id}/execute")
async def execute_workflow(workflow_id: str, body: ExecuteRequest, service: Service) -> dict:
    """Run the workflow and wait for it to finish or suspend.

    Raises:
        404: Workflow not found.
        400: Input does not satisfy the start node.
    """
    execution = await service.execute(workflow_id, body.input)
    return ExecuteResponse.from_execution(execution).to_dict()


@router.post("/{workflow_id}/execute-stream")
async def execute_workflow_stream(
    workflow_id: str, body: ExecuteRequest, service: Service
) -> StreamingResponse:
    """Run the workflow in the background and stream its events as SSE."""
    execution_id, stream = await service.execute_stream(workflow_id, body.input)
    return StreamingResponse(
        stream.iter_sse(),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Execution-Id": execution_id},
    )


@router.get("/{workflow_id}/executions")
async def list_workflow_executions(workflow_id: str, service: Service) -> dict:
    executions: list[Execution] = await service.list_executions(workflow_id)
    return {"executions": [e.to_dict() for e in executions], "total": len(executions)}
