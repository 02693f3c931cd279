"""Execution service layer.

Provides business logic for execution operations:
- Workflow document storage
- Blocking and streaming executions
- Stop and resume
- Approval lookup, resolution and the expiry sweep
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from flowchord.config import Settings
from flowchord.core.events import EventBus, EventStream
from flowchord.core.executor import WorkflowExecutor
from flowchord.core.resume import ResumeController
from flowchord.core.types import Execution, ResumeAction, ResumeDecision, Workflow, new_id
from flowchord.errors.exceptions import (
    ApprovalNotFoundError,
    ExecutionNotFoundError,
    FlowChordError,
    WorkflowNotFoundError,
)
from flowchord.llm.registry import build_default_registry
from flowchord.logging import get_logger
from flowchord.nodes.base import NodeServices
from flowchord.nodes.registry import HandlerRegistry
from flowchord.protocols.mcp.client import MCPClient
from flowchord.protocols.mcp.types import MCPServerConfig
from flowchord.storage.interfaces import (
    IApprovalStore,
    ICheckpointStore,
    IExecutionRepository,
    IWorkflowRepository,
)
from flowchord.storage.json_file import JSONFileCheckpointStore
from flowchord.storage.memory import (
    InMemoryApprovalStore,
    InMemoryCheckpointStore,
    InMemoryExecutionRepository,
    InMemoryWorkflowRepository,
)
from flowchord.storage.models import ApprovalRecord

logger = logging.getLogger(__name__)


class ExecutionService:
    """Service layer for workflow and execution operations.

    Provides:
        - Workflow CRUD
        - Blocking (`execute`) and streaming (`execute_stream`) runs
        - Stop, resume and approval resolution
    """

    def __init__(
        self,
        executor: WorkflowExecutor,
        workflow_repo: IWorkflowRepository,
        execution_repo: IExecutionRepository,
        approval_store: IApprovalStore,
        max_concurrent_executions: int = 50,
    ) -> None:
        self.executor = executor
        self.workflow_repo = workflow_repo
        self.execution_repo = execution_repo
        self.approval_store = approval_store
        self.resume_controller = ResumeController(
            executor,
            execution_repo=execution_repo,
            approval_store=approval_store,
        )
        self._slots = asyncio.Semaphore(max_concurrent_executions)
        self._tasks: dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> ExecutionService:
        """Wire the default stores, providers and executor from settings."""
        workflow_repo = InMemoryWorkflowRepository()
        execution_repo = InMemoryExecutionRepository()
        approval_store = InMemoryApprovalStore()
        checkpoint_store: ICheckpointStore = (
            JSONFileCheckpointStore(settings.checkpoint_dir)
            if settings.checkpoint_dir
            else InMemoryCheckpointStore()
        )

        providers = build_default_registry(
            openai_api_key=settings.openai_api_key,
            openai_base_url=settings.openai_base_url,
            anthropic_api_key=settings.anthropic_api_key,
            timeout=settings.llm_timeout,
        )
        servers = [MCPServerConfig.model_validate(s) for s in settings.mcp_server_configs()]
        services = NodeServices(
            llm_factory=providers.create_provider,
            default_model=settings.default_model,
            mcp=MCPClient(servers) if servers else None,
            approval_store=approval_store,
            mock_agent_response=settings.mock_agent_response or None,
        )
        executor = WorkflowExecutor(
            config=settings.engine_config(),
            registry=HandlerRegistry.default(),
            services=services,
            checkpoint_store=checkpoint_store,
            event_bus=EventBus(retain_finished=settings.retained_event_streams),
            execution_repo=execution_repo,
            console=get_logger(),
        )
        return cls(
            executor,
            workflow_repo,
            execution_repo,
            approval_store,
            max_concurrent_executions=settings.max_concurrent_executions,
        )

    # Workflows

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        """Create or replace a workflow document, dropping edges to missing nodes."""
        cleaned = workflow.without_dangling_edges()
        dropped = len(workflow.edges) - len(cleaned.edges)
        if dropped:
            logger.warning("Workflow %s: dropped %d dangling edges", workflow.id, dropped)
        return await self.workflow_repo.save(cleaned)

    async def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = await self.workflow_repo.get_by_id(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def list_workflows(self) -> list[Workflow]:
        return await self.workflow_repo.list_all()

    async def delete_workflow(self, workflow_id: str) -> None:
        if not await self.workflow_repo.delete(workflow_id):
            raise WorkflowNotFoundError(workflow_id)

    # Executions

    async def execute(self, workflow_id: str, input: dict[str, Any] | None = None) -> Execution:
        """Run a stored workflow to completion or suspension.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
            WorkflowValidationError: If the workflow cannot be executed.
            InputValidationError: If the input does not satisfy the start node.
        """
        workflow = await self.get_workflow(workflow_id)
        async with self._slots:
            return await self.executor.run(workflow, input)

    async def execute_stream(
        self, workflow_id: str, input: dict[str, Any] | None = None
    ) -> tuple[str, EventStream]:
        """Start a run in the background and return its event stream.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        workflow = await self.get_workflow(workflow_id)
        execution_id = new_id("exec")
        stream = self.executor.event_bus.get_or_create(execution_id)

        async def _run() -> None:
            async with self._slots:
                try:
                    await self.executor.run(workflow, input, execution_id=execution_id, stream=stream)
                except FlowChordError as e:
                    # Already recorded on the execution and streamed as workflow_failed
                    logger.info("Execution %s ended with %s", execution_id, e.message)
                except Exception:
                    logger.exception("Background execution %s crashed", execution_id)
                    await stream.close()

        task = asyncio.create_task(_run())
        self._tasks[execution_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(execution_id, None))
        return execution_id, stream

    async def wait(self, execution_id: str) -> Execution:
        """Wait for a background run segment to settle and return its record."""
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.get_execution(execution_id)

    async def get_execution(self, execution_id: str) -> Execution:
        live = self.executor.get_live(execution_id)
        if live is not None:
            return live
        execution = await self.execution_repo.get_by_id(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    async def list_executions(self, workflow_id: str) -> list[Execution]:
        return await self.execution_repo.list_by_workflow(workflow_id)

    async def stop(self, execution_id: str) -> Execution:
        """Stop a running or waiting execution; terminal executions are returned as-is."""
        stopped = await self.executor.stop(execution_id)
        if stopped is not None:
            return stopped
        return await self.get_execution(execution_id)

    async def resume(self, execution_id: str, decision: ResumeDecision) -> Execution:
        return await self.resume_controller.resume(execution_id, decision)

    def get_stream(self, execution_id: str) -> EventStream | None:
        return self.executor.event_bus.get(execution_id)

    # Approvals

    async def get_approval(self, approval_id: str) -> ApprovalRecord:
        record = await self.approval_store.get_by_id(approval_id)
        if record is None:
            raise ApprovalNotFoundError(approval_id)
        return record

    async def resolve_approval(
        self,
        approval_id: str,
        action: ResumeAction | str,
        user_id: str | None = None,
        comment: str | None = None,
    ) -> tuple[ApprovalRecord, Execution]:
        record = await self.resume_controller.resolve_approval(
            approval_id, action, user_id=user_id, comment=comment
        )
        return record, await self.get_execution(record.execution_id)

    async def sweep_approvals(self) -> list[str]:
        return await self.resume_controller.sweep_expired_approvals()

    async def shutdown(self) -> None:
        """Cancel background runs still in flight."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
