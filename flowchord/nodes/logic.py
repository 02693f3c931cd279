"""Routing nodes: if-else, while and user-approval.

Each returns a canonical branch name from its vocabulary and leaves the
choice of successor edges to the graph walker.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flowchord.core.types import (
    Node,
    NodeOutcome,
    NodeType,
    PendingAuth,
    ResumeAction,
    utcnow,
)
from flowchord.errors.exceptions import NodeExecutionError
from flowchord.nodes.base import BaseNodeHandler, NodeContext
from flowchord.storage.models import ApprovalRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class IfElseNodeHandler(BaseNodeHandler):
    node_type = NodeType.IF_ELSE

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        expression = node.data.get("condition") or "false"
        result = ctx.evaluate_condition(expression)
        branch = "if" if result else "else"
        return NodeOutcome(
            output={"condition": result, "branch": branch, "evaluatedCondition": expression},
            branch=branch,
            updates_last_output=False,
        )


class WhileNodeHandler(BaseNodeHandler):
    """Loop head.

    Every visit enters (first time, counter 0) or re-enters (counter + 1)
    the node's loop frame, so the body observes ``iteration`` 0..N-1. The
    frame is dropped when the loop breaks.
    """

    node_type = NodeType.WHILE

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        limit = self.max_iterations(node, ctx)
        expression = node.data.get("whileCondition") or node.data.get("condition") or "false"

        iteration = ctx.scope.enter_loop(node.id)
        under_cap = iteration < limit
        holds = under_cap and ctx.evaluate_condition(expression)

        output = {
            "iteration": iteration,
            "maxIterations": limit,
            "condition": holds,
            "evaluatedCondition": expression,
            "continue": holds,
        }
        if holds:
            output["loopResults"] = list(ctx.scope.loop_results.get(node.id, []))
            return NodeOutcome(output=output, branch="continue", updates_last_output=False)

        output["stoppedReason"] = "condition_false" if under_cap else "max_iterations"
        if not under_cap:
            logger.info("While node %s stopped at max iterations (%d)", node.id, limit)
        output["loopResults"] = ctx.scope.exit_loop(node.id)
        return NodeOutcome(output=output, branch="break", updates_last_output=False)

    @staticmethod
    def max_iterations(node: Node, ctx: NodeContext) -> int:
        raw = node.data.get("maxIterations")
        try:
            limit = int(raw) if raw not in (None, "") else ctx.config.default_max_iterations
        except (TypeError, ValueError):
            limit = DEFAULT_MAX_ITERATIONS
        return max(1, min(limit, ctx.config.max_loop_iterations))


class UserApprovalNodeHandler(BaseNodeHandler):
    """Suspends the run until a person approves or rejects.

    The first visit records an ApprovalRecord and returns pendingAuth. When
    the run is resumed the decision arrives in ``ctx.resume`` and becomes
    the branch.
    """

    node_type = NodeType.USER_APPROVAL

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        decision = ctx.resume
        if decision is not None and decision.action in (ResumeAction.APPROVE, ResumeAction.REJECT):
            return NodeOutcome(
                output={
                    "approvalId": decision.auth_id,
                    "decision": decision.action.value,
                    "userId": decision.user_id,
                    "comment": decision.comment,
                },
                branch=decision.action.value,
            )

        store = ctx.services.approval_store
        if store is None:
            raise NodeExecutionError("No approval store is configured", node_id=node.id)

        message = ctx.interpolate(node.data.get("approvalMessage") or "Approval required")
        minutes = node.data.get("timeoutMinutes") or ctx.config.default_approval_timeout_minutes
        now = utcnow()
        record = await store.create(
            ApprovalRecord(
                execution_id=ctx.execution_id,
                workflow_id=ctx.workflow.id,
                node_id=node.id,
                message=message,
                created_at=now,
                updated_at=now,
                expires_at=now + timedelta(minutes=float(minutes)),
            )
        )
        return NodeOutcome(
            output={"approvalId": record.approval_id, "message": message, "status": "pending"},
            pending_auth=PendingAuth(
                tool_name="user-approval",
                message=message,
                auth_id=record.approval_id,
                node_id=node.id,
                kind="approval",
            ),
        )
