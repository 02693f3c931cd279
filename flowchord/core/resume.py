"""Resume controller: delivers external decisions to suspended executions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from flowchord.core.executor import WorkflowExecutor
from flowchord.core.types import Execution, ResumeAction, ResumeDecision, utcnow
from flowchord.errors.exceptions import (
    ApprovalNotFoundError,
    ApprovalTimeoutError,
    ConfigurationError,
    ExecutionNotFoundError,
    ExecutionNotResumableError,
    FlowChordError,
)
from flowchord.storage.interfaces import IApprovalStore, ICheckpointStore, IExecutionRepository
from flowchord.storage.models import ApprovalRecord, ApprovalStatus

logger = logging.getLogger(__name__)

TIMEOUT_RESOLVER = "system:timeout"


class ResumeController:
    """Turns approvals and authorization callbacks into resumed runs.

    A waiting execution is claimed by deleting its checkpoint, so of several
    concurrent resume calls only the first continues the run; the others
    return the current record unchanged.

    Example:
        >>> controller = ResumeController(executor)
        >>> record = await controller.resolve_approval(approval_id, "approve", user_id="u1")
    """

    def __init__(
        self,
        executor: WorkflowExecutor,
        checkpoint_store: ICheckpointStore | None = None,
        execution_repo: IExecutionRepository | None = None,
        approval_store: IApprovalStore | None = None,
    ) -> None:
        self.executor = executor
        self.checkpoint_store = checkpoint_store or executor.checkpoint_store
        self.execution_repo = execution_repo or executor.execution_repo
        self.approval_store = approval_store or executor.services.approval_store
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def _hold(self, key: str) -> AsyncIterator[None]:
        """Serialize on ``key``; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                self._locks.pop(key, None)

    @property
    def held_locks(self) -> int:
        return len(self._locks)

    async def _current(self, execution_id: str) -> Execution:
        live = self.executor.get_live(execution_id)
        if live is not None:
            return live
        if self.execution_repo is not None:
            stored = await self.execution_repo.get_by_id(execution_id)
            if stored is not None:
                return stored
        raise ExecutionNotFoundError(execution_id)

    async def resume(self, execution_id: str, decision: ResumeDecision) -> Execution:
        """Continue a waiting execution; a no-op for any other status.

        Raises:
            ExecutionNotFoundError: If the execution is unknown.
            ExecutionNotResumableError: If the decision names another pending request.
        """
        async with self._hold(execution_id):
            checkpoint = await self.checkpoint_store.load(execution_id)
            if checkpoint is None:
                current = await self._current(execution_id)
                logger.info(
                    "Execution %s is %s; resume ignored", execution_id, current.status.value
                )
                return current

            expected = checkpoint.pending_auth.auth_id
            if decision.auth_id and decision.auth_id != expected:
                raise ExecutionNotResumableError(
                    execution_id, f"it is waiting for '{expected}', not '{decision.auth_id}'"
                )
            if not await self.checkpoint_store.delete(execution_id):
                return await self._current(execution_id)
            if checkpoint.pending_auth.kind == "approval":
                await self._settle_approval(expected, decision)

        if decision.auth_id is None:
            decision = decision.model_copy(update={"auth_id": expected})
        logger.info(
            "Resuming execution %s at %s with %s",
            execution_id,
            checkpoint.suspended_node_id,
            decision.action.value,
        )
        return await self.executor.resume_from_checkpoint(checkpoint, decision)

    async def resolve_approval(
        self,
        approval_id: str,
        action: ResumeAction | str,
        user_id: str | None = None,
        comment: str | None = None,
    ) -> ApprovalRecord:
        """Record a human decision and resume the owning execution.

        An already-resolved record is returned unchanged. A request past its
        deadline resolves as a timeout rejection whatever was asked.

        Raises:
            ApprovalNotFoundError: If the approval id is unknown.
            ValueError: If the action is not approve or reject.
        """
        store = self._require_store()
        action = ResumeAction(action)
        if action not in (ResumeAction.APPROVE, ResumeAction.REJECT):
            raise ValueError(f"Approval action must be approve or reject, got '{action.value}'")

        async with self._hold(f"approval:{approval_id}"):
            record = await store.get_by_id(approval_id)
            if record is None:
                raise ApprovalNotFoundError(approval_id)
            if not record.is_pending:
                return record

            now = utcnow()
            if record.is_expired(now):
                timeout = ApprovalTimeoutError(approval_id)
                logger.info("%s before it was resolved", timeout.message)
                action, resolved_by, comment = ResumeAction.REJECT, TIMEOUT_RESOLVER, timeout.message
            else:
                resolved_by = user_id

            record = await store.update(
                _resolved(record, action, now, user_id=user_id, comment=comment, resolved_by=resolved_by)
            )

        await self.resume(
            record.execution_id,
            ResumeDecision(action=action, user_id=user_id, comment=comment, auth_id=approval_id),
        )
        return record

    async def sweep_expired_approvals(self, now: datetime | None = None) -> list[str]:
        """Reject every pending approval past its deadline and resume its run.

        Returns:
            The approval ids that were resolved.
        """
        store = self._require_store()
        now = now or utcnow()
        swept: list[str] = []

        for record in await store.list_pending():
            if not record.is_expired(now):
                continue
            timeout = ApprovalTimeoutError(record.approval_id)
            async with self._hold(f"approval:{record.approval_id}"):
                current = await store.get_by_id(record.approval_id)
                if current is None or not current.is_pending:
                    continue
                await store.update(
                    _resolved(
                        current,
                        ResumeAction.REJECT,
                        now,
                        user_id=current.user_id,
                        comment=timeout.message,
                        resolved_by=TIMEOUT_RESOLVER,
                    )
                )
            swept.append(record.approval_id)
            try:
                await self.resume(
                    record.execution_id,
                    ResumeDecision(
                        action=ResumeAction.REJECT,
                        user_id=TIMEOUT_RESOLVER,
                        comment=timeout.message,
                        auth_id=record.approval_id,
                    ),
                )
            except FlowChordError as e:
                logger.warning("Could not resume %s after approval timeout: %s", record.execution_id, e)

        if swept:
            logger.info("Rejected %d expired approvals", len(swept))
        return swept

    async def _settle_approval(self, approval_id: str, decision: ResumeDecision) -> None:
        """Resolve the approval record of a run resumed without going through it."""
        if self.approval_store is None or decision.action not in (
            ResumeAction.APPROVE,
            ResumeAction.REJECT,
        ):
            return
        async with self._hold(f"approval:{approval_id}"):
            record = await self.approval_store.get_by_id(approval_id)
            if record is None or not record.is_pending:
                return
            await self.approval_store.update(
                _resolved(
                    record,
                    decision.action,
                    utcnow(),
                    user_id=decision.user_id,
                    comment=decision.comment,
                    resolved_by=decision.user_id,
                )
            )

    def _require_store(self) -> IApprovalStore:
        if self.approval_store is None:
            raise ConfigurationError("No approval store is configured")
        return self.approval_store


def _resolved(
    record: ApprovalRecord,
    action: ResumeAction,
    now: datetime,
    *,
    user_id: str | None,
    comment: str | None,
    resolved_by: str | None,
) -> ApprovalRecord:
    status = ApprovalStatus.APPROVED if action == ResumeAction.APPROVE else ApprovalStatus.REJECTED
    return record.model_copy(
        update={
            "status": status,
            "user_id": user_id,
            "comment": comment,
            "updated_at": now,
            "resolved_at": now,
            "resolved_by": resolved_by,
        }
    )
