"""Set-state node: writes one typed value into the run's state."""

from __future__ import annotations

import json
import logging
from typing import Any

from flowchord.core.types import Node, NodeOutcome, NodeType
from flowchord.errors.exceptions import ExpressionError, NodeExecutionError
from flowchord.nodes.base import BaseNodeHandler, NodeContext

logger = logging.getLogger(__name__)

VALUE_TYPES = ("string", "number", "boolean", "json", "expression")


class SetStateNodeHandler(BaseNodeHandler):
    node_type = NodeType.SET_STATE

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        data = node.data
        key = data.get("stateKey") or "variable"
        value_type = data.get("valueType") or "string"
        raw = data.get("stateValue")

        value = self._convert(key, raw, value_type, ctx)
        return NodeOutcome(
            output={"key": key, "value": value, "valueType": value_type},
            variables={key: value},
            updates_last_output=False,
        )

    def _convert(self, key: str, raw: Any, value_type: str, ctx: NodeContext) -> Any:
        if value_type == "expression":
            if raw is None or raw == "":
                return None
            try:
                return ctx.resolver.evaluate(str(raw), ctx.scope)
            except ExpressionError as e:
                logger.warning("Set-state '%s': %s", key, e.message)
                return None

        text = ctx.interpolate(raw) if isinstance(raw, str) else raw

        if value_type == "number":
            if isinstance(text, (int, float)) and not isinstance(text, bool):
                return text
            try:
                number = float(str(text).strip())
            except ValueError:
                raise NodeExecutionError(
                    f"Failed to set state variable '{key}': cannot convert {text!r} to number"
                ) from None
            return int(number) if number.is_integer() and "." not in str(text) else number

        if value_type == "boolean":
            if isinstance(text, bool):
                return text
            return str(text).strip().lower() in ("true", "1", "yes")

        if value_type == "json":
            if not isinstance(text, str):
                return text
            try:
                return json.loads(text)
            except json.JSONDecodeError as e:
                raise NodeExecutionError(
                    f"Failed to set state variable '{key}': invalid JSON ({e.msg})"
                ) from e

        return "" if text is None else text
