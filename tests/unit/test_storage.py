"""Unit tests for storage implementations."""

from __future__ import annotations

from datetime import timedelta

import pytest

from flowchord.core.types import Execution, ExecutionStatus, PendingAuth, Workflow, utcnow
from flowchord.storage.json_file import JSONFileCheckpointStore
from flowchord.storage.memory import (
    InMemoryApprovalStore,
    InMemoryCheckpointStore,
    InMemoryExecutionRepository,
    InMemoryWorkflowRepository,
)
from flowchord.storage.models import ApprovalRecord, ApprovalStatus, Checkpoint
from tests.conftest import approval_workflow


def _checkpoint(execution_id: str = "exec-1") -> Checkpoint:
    workflow = approval_workflow()
    execution = Execution(
        id=execution_id,
        workflow_id=workflow.id,
        status=ExecutionStatus.WAITING_AUTH,
        input={"title": "Q3 report"},
    )
    pending = PendingAuth(
        tool_name="user-approval",
        message="Publish Q3 report?",
        auth_id="approval-1",
        node_id="review",
    )
    return Checkpoint(
        execution_id=execution_id,
        workflow=workflow,
        suspended_node_id="review",
        frontier=["review"],
        scope={"input": {"title": "Q3 report"}, "loops": [["loop", 3]]},
        execution=execution,
        pending_auth=pending,
        steps=2,
    )


class TestInMemoryWorkflowRepository:
    """Tests for InMemoryWorkflowRepository."""

    @pytest.mark.asyncio
    async def test_save_and_get(self) -> None:
        """Saved workflows come back as detached copies."""
        repo = InMemoryWorkflowRepository()
        await repo.save(Workflow(id="wf", name="First"))

        loaded = await repo.get_by_id("wf")
        loaded.name = "changed"

        assert (await repo.get_by_id("wf")).name == "First"
        assert await repo.get_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_list_and_delete(self) -> None:
        """Deleting removes the workflow once."""
        repo = InMemoryWorkflowRepository()
        await repo.save(Workflow(id="a"))
        await repo.save(Workflow(id="b"))

        assert {w.id for w in await repo.list_all()} == {"a", "b"}
        assert await repo.delete("a") is True
        assert await repo.delete("a") is False


class TestInMemoryExecutionRepository:
    """Tests for InMemoryExecutionRepository."""

    @pytest.mark.asyncio
    async def test_list_by_workflow_newest_first(self) -> None:
        """Executions are filtered by workflow and sorted newest first."""
        repo = InMemoryExecutionRepository()
        now = utcnow()
        await repo.create(Execution(id="old", workflow_id="wf", started_at=now - timedelta(minutes=5)))
        await repo.create(Execution(id="new", workflow_id="wf", started_at=now))
        await repo.create(Execution(id="other", workflow_id="wf-2"))

        listed = await repo.list_by_workflow("wf")

        assert [e.id for e in listed] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_update(self) -> None:
        """update replaces the stored document."""
        repo = InMemoryExecutionRepository()
        execution = await repo.create(Execution(id="e", workflow_id="wf"))
        execution.status = ExecutionStatus.COMPLETED

        await repo.update(execution)

        assert (await repo.get_by_id("e")).status == ExecutionStatus.COMPLETED


class TestApprovalStore:
    """Tests for approval records."""

    @pytest.mark.asyncio
    async def test_pending_and_by_execution(self) -> None:
        """list_pending skips resolved records."""
        store = InMemoryApprovalStore()
        await store.create(ApprovalRecord(approval_id="a1", execution_id="e1", workflow_id="wf", node_id="n"))
        await store.create(ApprovalRecord(
            approval_id="a2",
            execution_id="e2",
            workflow_id="wf",
            node_id="n",
            status=ApprovalStatus.APPROVED,
        ))

        assert [r.approval_id for r in await store.list_pending()] == ["a1"]
        assert [r.approval_id for r in await store.list_by_execution("e2")] == ["a2"]

    def test_expiry(self) -> None:
        """Only pending records with a past deadline are expired."""
        now = utcnow()
        record = ApprovalRecord(
            execution_id="e",
            workflow_id="wf",
            node_id="n",
            expires_at=now - timedelta(seconds=1),
        )

        assert record.is_expired(now)
        assert not ApprovalRecord(execution_id="e", workflow_id="wf", node_id="n").is_expired(now)

        record.status = ApprovalStatus.REJECTED
        assert not record.is_expired(now)


class TestInMemoryCheckpointStore:
    """Tests for InMemoryCheckpointStore."""

    @pytest.mark.asyncio
    async def test_save_load_delete(self) -> None:
        """Checkpoints are stored per execution and deleted once."""
        store = InMemoryCheckpointStore()
        await store.save(_checkpoint())

        loaded = await store.load("exec-1")

        assert loaded.pending_auth.auth_id == "approval-1"
        assert await store.list_ids() == ["exec-1"]
        assert await store.delete("exec-1") is True
        assert await store.delete("exec-1") is False
        assert await store.load("exec-1") is None


class TestJSONFileCheckpointStore:
    """Tests for JSONFileCheckpointStore."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path) -> None:
        """A saved checkpoint reloads with workflow, scope and execution intact."""
        store = JSONFileCheckpointStore(tmp_path / "checkpoints")
        original = _checkpoint()

        await store.save(original)
        loaded = await JSONFileCheckpointStore(tmp_path / "checkpoints").load("exec-1")

        assert loaded.workflow == original.workflow
        assert loaded.scope == original.scope
        assert loaded.execution.input == {"title": "Q3 report"}
        assert loaded.steps == 2
        assert (tmp_path / "checkpoints" / "exec-1.json").exists()

    @pytest.mark.asyncio
    async def test_camel_case_on_disk(self, tmp_path) -> None:
        """Files use the camelCase wire names."""
        store = JSONFileCheckpointStore(tmp_path)
        await store.save(_checkpoint())

        text = (tmp_path / "exec-1.json").read_text(encoding="utf-8")

        assert '"suspendedNodeId": "review"' in text
        assert '"pendingAuth"' in text

    @pytest.mark.asyncio
    async def test_missing_and_delete(self, tmp_path) -> None:
        """Unknown ids load as None and delete reports whether a file existed."""
        store = JSONFileCheckpointStore(tmp_path)

        assert await store.load("nope") is None
        assert await store.list_ids() == []

        await store.save(_checkpoint("a"))
        await store.save(_checkpoint("b"))
        assert await store.list_ids() == ["a", "b"]

        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert await store.list_ids() == ["b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", ["../escape", "a/b", "a\\b", ""])
    async def test_rejects_path_traversal(self, tmp_path, bad_id) -> None:
        """Ids that could leave the base directory are refused."""
        store = JSONFileCheckpointStore(tmp_path)

        with pytest.raises(ValueError):
            await store.load(bad_id)
