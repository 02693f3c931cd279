"""Service layer."""

from flowchord.services.execution_service import ExecutionService

__all__ = ["ExecutionService"]
