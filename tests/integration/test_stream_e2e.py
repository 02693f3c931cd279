"""Integration tests for streamed executions."""

from __future__ import annotations

import pytest

from flowchord.core.events import EventType
from flowchord.core.types import ExecutionStatus, ResumeAction
from flowchord.errors.exceptions import WorkflowNotFoundError
from flowchord.services.execution_service import ExecutionService
from flowchord.storage.memory import InMemoryWorkflowRepository
from tests.conftest import approval_workflow, chain, node


@pytest.fixture
async def service(executor, execution_repo, approval_store):
    svc = ExecutionService(
        executor,
        InMemoryWorkflowRepository(),
        execution_repo,
        approval_store,
        max_concurrent_executions=4,
    )
    await svc.save_workflow(
        chain(
            node("start", "start"),
            node("agent", "agent", instructions="{{input.msg}}"),
            node("end", "end"),
            workflow_id="wf-echo",
        )
    )
    await svc.save_workflow(approval_workflow())
    await svc.save_workflow(
        chain(
            node("start", "start"),
            node("bad", "set-state", stateKey="n", valueType="number", stateValue="many"),
            workflow_id="wf-bad",
        )
    )
    yield svc
    await svc.shutdown()


@pytest.mark.integration
class TestStreaming:
    """execute_stream and event ordering."""

    @pytest.mark.asyncio
    async def test_event_order(self, service):
        """A linear run emits start, per-node pairs and completion in order."""
        execution_id, stream = await service.execute_stream("wf-echo", {"msg": "hi"})

        events = [e async for e in stream.iter_events()]

        assert [(e.type, e.node_id) for e in events] == [
            (EventType.WORKFLOW_STARTED, None),
            (EventType.NODE_STARTED, "start"),
            (EventType.NODE_COMPLETED, "start"),
            (EventType.NODE_STARTED, "agent"),
            (EventType.NODE_COMPLETED, "agent"),
            (EventType.NODE_STARTED, "end"),
            (EventType.NODE_COMPLETED, "end"),
            (EventType.WORKFLOW_COMPLETED, None),
        ]
        assert [e.seq for e in events] == list(range(len(events)))
        assert all(e.execution_id == execution_id for e in events)
        assert events[-1].data == {"output": "hi"}

        execution = await service.wait(execution_id)
        assert execution.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failure_stream(self, service):
        """A failing node is reported before workflow_failed."""
        execution_id, stream = await service.execute_stream("wf-bad")

        events = [e async for e in stream.iter_events()]

        assert [e.type for e in events[-2:]] == [EventType.NODE_FAILED, EventType.WORKFLOW_FAILED]
        assert "cannot convert 'many' to number" in events[-1].data["error"]
        execution = await service.wait(execution_id)
        assert execution.status == ExecutionStatus.FAILED

    @pytest.mark.asyncio
    async def test_paused_then_resumed(self, service):
        """A resumed run continues numbering on the same stream."""
        execution_id, stream = await service.execute_stream("wf-approval", {"title": "Q3"})
        paused = [e async for e in stream.iter_events()]

        assert [e.type for e in paused[-2:]] == [EventType.NODE_PAUSED, EventType.WORKFLOW_PAUSED]
        pending = paused[-1].data["pendingAuth"]
        assert pending["toolName"] == "user-approval"
        waiting = await service.wait(execution_id)
        assert waiting.status == ExecutionStatus.WAITING_AUTH

        record, execution = await service.resolve_approval(pending["authId"], ResumeAction.APPROVE)

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.output == "published Q3"
        resumed = stream.events(after=paused[-1].seq)
        assert resumed[0].type == EventType.WORKFLOW_RESUMED
        assert resumed[0].seq == paused[-1].seq + 1
        assert resumed[-1].type == EventType.WORKFLOW_COMPLETED
        assert service.get_stream(execution_id) is stream

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, service):
        """Streaming an unknown workflow raises before any task starts."""
        with pytest.raises(WorkflowNotFoundError):
            await service.execute_stream("wf-missing")

    @pytest.mark.asyncio
    async def test_stop_waiting_run(self, service):
        """stop on a waiting run closes its stream with workflow_cancelled."""
        execution = await service.execute("wf-approval", {"title": "Q3"})

        stopped = await service.stop(execution.id)

        assert stopped.status == ExecutionStatus.CANCELLED
        stream = service.get_stream(execution.id)
        assert stream.events()[-1].type == EventType.WORKFLOW_CANCELLED
        again = await service.stop(execution.id)
        assert again.status == ExecutionStatus.CANCELLED
