"""FastAPI dependencies backed by app.state singletons."""

from __future__ import annotations

from fastapi import Request

from flowchord.services.execution_service import ExecutionService


def get_execution_service(request: Request) -> ExecutionService:
    return request.app.state.execution_service
