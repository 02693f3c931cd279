"""End and note nodes."""

from __future__ import annotations

from flowchord.core.types import Node, NodeOutcome, NodeType
from flowchord.nodes.base import BaseNodeHandler, NodeContext


class EndNodeHandler(BaseNodeHandler):
    """Stops the run. Its output becomes the execution output."""

    node_type = NodeType.END

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        template = node.data.get("output")
        if template not in (None, ""):
            output = ctx.interpolate_value(template)
        else:
            output = ctx.scope.last_output
        return NodeOutcome(output=output, terminal=True, updates_last_output=False)


class NoteNodeHandler(BaseNodeHandler):
    # Notes are annotations; the walker never dispatches them.
    node_type = NodeType.NOTE

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        return NodeOutcome(updates_last_output=False)
