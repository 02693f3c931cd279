"""Graph walker.

Walks a workflow from its start node, dispatching each node to its handler
and following the edges selected by the handler's branch. Runs end when an
end node is reached, the frontier empties, a node fails, the run is stopped
or a node asks to wait for an external decision. Waiting runs are written
to the checkpoint store and continued later by `resume_from_checkpoint`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from flowchord.core.config import EngineConfig
from flowchord.core.events import EventBus, EventStream, EventType
from flowchord.core.expressions import ExpressionResolver
from flowchord.core.scope import APPEND_LOOP_RESULT, Scope
from flowchord.core.state import ExecutionState
from flowchord.core.types import (
    Execution,
    ExecutionStatus,
    Node,
    NodeOutcome,
    NodeType,
    PendingAuth,
    ResumeAction,
    ResumeDecision,
    Workflow,
    new_id,
)
from flowchord.core.validation import prepare_workflow
from flowchord.errors.exceptions import (
    FlowChordError,
    InputValidationError,
    WorkflowValidationError,
)
from flowchord.logging import FlowChordLogger, get_logger
from flowchord.nodes.base import BaseNodeHandler, NodeContext, NodeServices
from flowchord.nodes.registry import HandlerRegistry
from flowchord.resilience.retry import RetryPolicy
from flowchord.resilience.timeout import TimeoutManager
from flowchord.storage.interfaces import ICheckpointStore, IExecutionRepository
from flowchord.storage.memory import InMemoryCheckpointStore
from flowchord.storage.models import Checkpoint

logger = logging.getLogger(__name__)


@dataclass
class _Walk:
    """Mutable bookkeeping for one run segment."""

    workflow: Workflow
    state: ExecutionState
    scope: Scope
    stream: EventStream
    steps: int = 0
    started: float = field(default_factory=time.perf_counter)
    ended: bool = False
    output: Any = None
    failures: list[str] = field(default_factory=list)
    fatal: FlowChordError | None = None
    suspension: tuple[Node, PendingAuth] | None = None
    deferred: list[str] = field(default_factory=list)
    resume: ResumeDecision | None = None
    resume_node_id: str | None = None
    # (node id, active loop frames) already queued under concurrent fan-out
    claimed: set[tuple[str, tuple[tuple[str, int], ...]]] = field(default_factory=set)

    def claim(self, node_id: str) -> bool:
        """Reserve a dispatch of ``node_id`` in the current loop iteration.

        Branches that join again reach the same node once per branch; only
        the first claim wins. Loop frames are part of the key so a while
        body can run once per iteration.
        """
        key = (node_id, tuple(self.scope.loops.items()))
        if key in self.claimed:
            return False
        self.claimed.add(key)
        return True

    @property
    def execution(self) -> Execution:
        return self.state.execution

    def take_resume(self, node_id: str) -> ResumeDecision | None:
        """The pending decision, delivered once to the suspended node."""
        if self.resume is not None and node_id == self.resume_node_id:
            decision, self.resume = self.resume, None
            return decision
        return None


class WorkflowExecutor:
    """Executes workflows node by node.

    Example:
        >>> executor = WorkflowExecutor(services=NodeServices(llm_factory=factory))
        >>> execution = await executor.run(workflow, {"topic": "tides"})
        >>> execution.status
        <ExecutionStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        registry: HandlerRegistry | None = None,
        services: NodeServices | None = None,
        checkpoint_store: ICheckpointStore | None = None,
        event_bus: EventBus | None = None,
        execution_repo: IExecutionRepository | None = None,
        console: FlowChordLogger | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.registry = registry or HandlerRegistry.default()
        self.services = services or NodeServices()
        self.checkpoint_store = checkpoint_store or InMemoryCheckpointStore()
        self.event_bus = event_bus or EventBus()
        self.execution_repo = execution_repo
        self.console = console or get_logger()
        self.resolver = ExpressionResolver()

        # Resilience components
        self._timeout_manager = TimeoutManager(default_timeout=self.config.node_timeout)
        self._retry_policy = RetryPolicy.from_config(self.config)

        # Executions currently walking, by id
        self._live: dict[str, Execution] = {}

        # Advisory stop requests
        self._cancelled: set[str] = set()

    # Public API

    async def run(
        self,
        workflow: Workflow,
        input: dict[str, Any] | None = None,
        *,
        execution_id: str | None = None,
        stream: EventStream | None = None,
    ) -> Execution:
        """Execute a workflow until it completes, fails, is stopped or suspends.

        Raises:
            WorkflowValidationError: If the workflow cannot be executed.
            InputValidationError: If the input does not satisfy the start node.
        """
        execution = Execution(
            id=execution_id or new_id("exec"),
            workflow_id=workflow.id,
            input=dict(input or {}),
        )
        stream = stream or self.event_bus.get_or_create(execution.id)
        state = ExecutionState(execution)
        if self.execution_repo is not None:
            await self.execution_repo.create(execution)

        try:
            prepared = prepare_workflow(workflow, self.config)
        except WorkflowValidationError as e:
            await state.fail(e.message)
            await stream.emit(EventType.WORKFLOW_FAILED, data={"error": e.message})
            await self._persist(execution)
            await stream.close()
            self.event_bus.release(execution.id)
            raise

        walk = _Walk(
            workflow=prepared,
            state=state,
            scope=Scope(execution.input),
            stream=stream,
        )
        await state.mark_running()
        self.console.workflow_start(workflow.id, execution.id, len(prepared.nodes))
        await stream.emit(
            EventType.WORKFLOW_STARTED,
            data={"workflowId": workflow.id, "input": execution.input},
        )

        await self._execute(walk, deque([prepared.start_node.id]))
        if walk.fatal is not None:
            raise walk.fatal
        return execution

    async def resume_from_checkpoint(
        self,
        checkpoint: Checkpoint,
        decision: ResumeDecision,
    ) -> Execution:
        """Continue a suspended run with an external decision.

        The suspended node is dispatched first and receives the decision;
        the rest of the saved frontier follows.
        """
        execution = checkpoint.execution.model_copy(deep=True)
        state = ExecutionState(execution)
        stream = self.event_bus.get_or_create(execution.id)
        stream.reopen()

        walk = _Walk(
            workflow=checkpoint.workflow,
            state=state,
            scope=Scope.restore(checkpoint.scope),
            stream=stream,
            steps=checkpoint.steps,
            resume=decision,
            resume_node_id=checkpoint.suspended_node_id,
        )
        await state.mark_running()
        await stream.emit(
            EventType.WORKFLOW_RESUMED,
            node_id=checkpoint.suspended_node_id,
            data={
                "action": decision.action.value,
                "authId": decision.auth_id,
                "userId": decision.user_id,
            },
        )

        frontier = deque([checkpoint.suspended_node_id])
        frontier.extend(n for n in checkpoint.frontier if n != checkpoint.suspended_node_id)
        await self._execute(walk, frontier)
        return execution

    async def stop(self, execution_id: str) -> Execution | None:
        """Request cancellation.

        A walking execution stops before its next dispatch; the in-flight
        node is allowed to finish. A suspended execution is cancelled at once
        and its checkpoint discarded. Returns None when there is nothing to
        stop.
        """
        if execution_id in self._live:
            self._cancelled.add(execution_id)
            return self._live[execution_id]

        checkpoint = await self.checkpoint_store.load(execution_id)
        if checkpoint is None or not await self.checkpoint_store.delete(execution_id):
            return None

        state = ExecutionState(checkpoint.execution.model_copy(deep=True))
        await state.cancel()
        stream = self.event_bus.get_or_create(execution_id)
        await stream.emit(EventType.WORKFLOW_CANCELLED, data={"reason": "stopped while waiting"})
        await stream.close()
        self.event_bus.release(execution_id)
        await self._persist(state.execution)
        self.console.workflow_end(execution_id, ExecutionStatus.CANCELLED.value, 0)
        return state.execution

    def get_live(self, execution_id: str) -> Execution | None:
        """The in-progress record of a walking execution."""
        return self._live.get(execution_id)

    def is_running(self, execution_id: str) -> bool:
        return execution_id in self._live

    # Walking

    async def _execute(self, walk: _Walk, frontier: deque[str]) -> None:
        execution_id = walk.execution.id
        self._live[execution_id] = walk.execution
        try:
            await self._walk(walk, frontier)
            await self._finish(walk)
        finally:
            self._live.pop(execution_id, None)
            self._cancelled.discard(execution_id)

    def _halted(self, walk: _Walk) -> bool:
        return (
            walk.ended
            or walk.suspension is not None
            or walk.execution.id in self._cancelled
            or (bool(walk.failures) and not self.config.continue_on_failure)
        )

    async def _walk(self, walk: _Walk, frontier: deque[str]) -> None:
        while frontier:
            if self._halted(walk):
                if walk.suspension is not None:
                    walk.deferred.extend(n for n in frontier if n not in walk.deferred)
                return

            node_id = frontier.popleft()
            node = walk.workflow.get_node(node_id)
            if node is None or node.type == NodeType.NOTE:
                continue

            if walk.steps >= self.config.max_steps:
                walk.failures.append(
                    f"Execution exceeded the maximum of {self.config.max_steps} steps"
                )
                frontier.clear()
                return

            successors = await self._dispatch(walk, node)
            if self.config.fan_out == "concurrent":
                successors = [s for s in successors if walk.claim(s)]
            if not successors:
                continue

            if self.config.fan_out == "concurrent" and len(successors) > 1:
                await asyncio.gather(*(self._walk(walk, deque([s])) for s in successors))
                if walk.ended:
                    return
            else:
                for successor in successors:
                    if successor not in frontier:
                        frontier.append(successor)

    async def _dispatch(self, walk: _Walk, node: Node) -> list[str]:
        """Run one node and return the ids of the nodes to visit next."""
        walk.steps += 1
        state, scope, stream = walk.state, walk.scope, walk.stream

        iteration = scope.iteration
        result = await state.node_started(node, iteration)
        self.console.node_start(node.id, node.type.value, iteration)
        await stream.emit(
            EventType.NODE_STARTED,
            node_id=node.id,
            node_type=node.type,
            data={"iteration": iteration} if iteration is not None else {},
        )

        decision = walk.take_resume(node.id)
        error = self._rejected(node, decision)
        outcome: NodeOutcome | None = None
        if error is None:
            ctx = NodeContext(
                execution_id=walk.execution.id,
                workflow=walk.workflow,
                scope=scope,
                config=self.config,
                services=self.services,
                resolver=self.resolver,
                resume=decision,
                console=self.console,
            )
            try:
                outcome = await self._retry_policy.execute(
                    self._run_handler, self.registry.get(node.type), node, ctx
                )
            except FlowChordError as e:
                error = e.message
                if isinstance(e, InputValidationError):
                    walk.fatal = e
            except Exception as e:
                logger.exception("Unexpected error in node %s", node.id)
                error = str(e) or type(e).__name__

        if outcome is None:
            await state.node_failed(result, error or "Node failed")
            self.console.node_error(node.id, result.error or "")
            await stream.emit(
                EventType.NODE_FAILED,
                node_id=node.id,
                node_type=node.type,
                data={"error": result.error},
            )
            walk.failures.append(result.error or "Node failed")
            return []

        if outcome.pending_auth is not None:
            pending = outcome.pending_auth.model_copy(update={"node_id": node.id})
            if walk.suspension is None:
                walk.suspension = (node, pending)
                await state.node_paused(result, outcome.model_copy(update={"pending_auth": pending}))
            else:
                # Only one suspension per segment; revisit this node on resume
                walk.deferred.insert(0, node.id)
            return []

        if isinstance(outcome.output, dict) and APPEND_LOOP_RESULT in outcome.output:
            outcome = self._collect_loop_result(scope, node, outcome)
        if node.type == NodeType.START and isinstance(outcome.output, dict):
            scope.input = outcome.output
        scope.record_output(node, outcome.output, update_last=outcome.updates_last_output)
        for key, value in outcome.variables.items():
            scope.set_state(key, value)
        if outcome.chat_turn:
            scope.append_chat(outcome.chat_turn["user"], outcome.chat_turn["assistant"])
        if node.type == NodeType.WHILE and isinstance(outcome.output, dict):
            result.iteration = outcome.output.get("iteration")

        await state.node_completed(result, outcome)
        self.console.node_end(node.id, result.duration_ms or 0, outcome.branch)
        await stream.emit(
            EventType.NODE_COMPLETED,
            node_id=node.id,
            node_type=node.type,
            data={
                "output": outcome.output,
                "branch": outcome.branch,
                "durationMs": result.duration_ms,
            },
        )

        if outcome.terminal:
            walk.ended = True
            walk.output = outcome.output
            return []
        return self._successors(walk.workflow, node, outcome.branch)

    async def _run_handler(self, handler: BaseNodeHandler, node: Node, ctx: NodeContext) -> NodeOutcome:
        return await self._timeout_manager.execute(handler.execute(node, ctx), node)

    @staticmethod
    def _rejected(node: Node, decision: ResumeDecision | None) -> str | None:
        """Failure message when a decision ends the suspended node."""
        if decision is None:
            return None
        if decision.action == ResumeAction.FAILED:
            return decision.reason or "Authorization failed"
        if decision.action == ResumeAction.REJECT and node.type != NodeType.USER_APPROVAL:
            return decision.reason or "Authorization was rejected"
        return None

    @staticmethod
    def _collect_loop_result(scope: Scope, node: Node, outcome: NodeOutcome) -> NodeOutcome:
        """Move an ``__appendToLoopResults`` value into the innermost loop's results."""
        output = dict(outcome.output)
        value = output.pop(APPEND_LOOP_RESULT)
        if scope.append_loop_result(value) is None:
            logger.warning("Node %s appended a loop result outside any while loop", node.id)
        return outcome.model_copy(update={"output": output})

    @staticmethod
    def _successors(workflow: Workflow, node: Node, branch: str | None) -> list[str]:
        edges = workflow.outgoing(node.id)
        if node.type.is_branching:
            return [e.target for e in edges if e.branch_for(node.type) == branch]
        return [e.target for e in edges]

    async def _finish(self, walk: _Walk) -> None:
        state, stream, execution = walk.state, walk.stream, walk.execution
        elapsed_ms = int((time.perf_counter() - walk.started) * 1000)

        if walk.failures:
            await state.fail(walk.failures[0])
            await stream.emit(EventType.WORKFLOW_FAILED, data={"error": walk.failures[0]})
        elif execution.id in self._cancelled:
            await state.cancel()
            await stream.emit(EventType.WORKFLOW_CANCELLED, data={"reason": "stopped"})
        elif walk.suspension is not None:
            node, pending = walk.suspension
            await state.suspend(node.id, pending)
            await self.checkpoint_store.save(
                Checkpoint(
                    execution_id=execution.id,
                    workflow=walk.workflow,
                    suspended_node_id=node.id,
                    frontier=walk.deferred,
                    scope=walk.scope.snapshot(),
                    execution=execution.model_copy(deep=True),
                    pending_auth=pending,
                    steps=walk.steps,
                )
            )
            payload = {"pendingAuth": pending.to_dict()}
            await stream.emit(
                EventType.NODE_PAUSED, node_id=node.id, node_type=node.type, data=payload
            )
            await stream.emit(EventType.WORKFLOW_PAUSED, node_id=node.id, data=payload)
            self.console.workflow_suspended(execution.id, node.id, pending.message)
        else:
            output = walk.output if walk.ended else walk.scope.last_output
            await state.complete(output)
            await stream.emit(EventType.WORKFLOW_COMPLETED, data={"output": output})

        if execution.status != ExecutionStatus.WAITING_AUTH:
            self.console.workflow_end(execution.id, execution.status.value, elapsed_ms)
        await self._persist(execution)
        await stream.close()
        if execution.status != ExecutionStatus.WAITING_AUTH:
            self.event_bus.release(execution.id)

    async def _persist(self, execution: Execution) -> None:
        if self.execution_repo is not None:
            await self.execution_repo.update(execution)
