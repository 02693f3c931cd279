"""FlowChord HTTP API - FastAPI application factory.

- Workflow storage and execution (blocking and SSE streaming)
- Execution status, stop and resume
- User approvals and the periodic expiry sweep
- Standard error envelope: {"error": {"code", "message"}}
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flowchord.api.routes import approvals, executions, health, workflows
from flowchord.config import Settings, get_settings
from flowchord.core.scheduler import ApprovalSweepScheduler
from flowchord.errors.exceptions import (
    ApprovalNotFoundError,
    ConfigurationError,
    ExecutionNotFoundError,
    ExecutionNotResumableError,
    FlowChordError,
    InputValidationError,
    InvalidStateTransitionError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from flowchord.logging_config import setup_logging
from flowchord.services.execution_service import ExecutionService

logger = logging.getLogger(__name__)

# (status code, error code) per domain error, most specific first
_ERROR_STATUS: list[tuple[type[FlowChordError], int, str]] = [
    (WorkflowNotFoundError, 404, "WORKFLOW_NOT_FOUND"),
    (ExecutionNotFoundError, 404, "EXECUTION_NOT_FOUND"),
    (ApprovalNotFoundError, 404, "APPROVAL_NOT_FOUND"),
    (InputValidationError, 400, "INVALID_INPUT"),
    (WorkflowValidationError, 400, "INVALID_WORKFLOW"),
    (ExecutionNotResumableError, 409, "NOT_RESUMABLE"),
    (InvalidStateTransitionError, 409, "INVALID_STATE"),
    (ConfigurationError, 500, "CONFIGURATION_ERROR"),
]


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application with its own service graph.

    Args:
        settings: Service settings; read from the environment when omitted.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan management."""
        setup_logging(settings.log_level, settings.log_format)
        logger.info("Starting %s v%s", settings.app_name, settings.app_version)

        service = ExecutionService.from_settings(settings)
        app.state.execution_service = service
        logger.info("ExecutionService initialized")

        scheduler = ApprovalSweepScheduler(
            service.sweep_approvals,
            interval_seconds=settings.approval_sweep_interval_seconds,
        )
        app.state.scheduler = scheduler
        if settings.scheduler_enabled:
            await scheduler.start()
        else:
            logger.info("Approval sweep disabled")

        yield

        logger.info("Shutting down %s", settings.app_name)
        await scheduler.shutdown()
        await service.shutdown()

    app = FastAPI(
        title=settings.app_name,
        description="Workflow execution engine for agent, tool and approval graphs.",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "Last-Event-ID"],
    )

    @app.exception_handler(FlowChordError)
    async def flowchord_exception_handler(request: Request, exc: FlowChordError):
        """Map domain errors to the standard error envelope."""
        for error_type, status_code, code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                return _error(status_code, code, exc.message)
        logger.warning("Unmapped error on %s: %s", request.url.path, exc.message)
        return _error(500, "ENGINE_ERROR", exc.message)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, "BAD_REQUEST", str(exc))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with standard error format."""
        return _error(
            exc.status_code,
            f"HTTP_{exc.status_code}",
            exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception")
        return _error(500, "INTERNAL_ERROR", "An unexpected error occurred")

    app.include_router(health.router)
    app.include_router(workflows.router)
    app.include_router(executions.router)
    app.include_router(approvals.router)
    return app
