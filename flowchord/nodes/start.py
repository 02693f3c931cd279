"""Start node: validates the caller's input against declared variables."""

from __future__ import annotations

import json
from typing import Any

from flowchord.core.types import Node, NodeOutcome, NodeType
from flowchord.errors.exceptions import InputValidationError
from flowchord.nodes.base import BaseNodeHandler, NodeContext

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def coerce_input(name: str, value: Any, expected: str) -> Any:
    """Check `value` against a declared type, accepting lossless string forms.

    Raises:
        InputValidationError: If the value cannot be read as `expected`.
    """
    expected = (expected or "string").lower()

    if expected == "string":
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    elif expected == "number":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                pass
            else:
                return int(number) if number.is_integer() and "." not in value else number
    elif expected == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
    elif expected in ("object", "array"):
        container = dict if expected == "object" else list
        if isinstance(value, container):
            return value
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, container):
                return parsed
    else:
        return value

    raise InputValidationError(
        f"Input variable '{name}' must be of type {expected}, got {type(value).__name__}",
        field=name,
    )


class StartNodeHandler(BaseNodeHandler):
    """Applies defaults and enforces required and typed input variables."""

    node_type = NodeType.START

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        effective = dict(ctx.scope.input)

        for variable in node.data.get("inputVariables") or []:
            name = variable.get("name")
            if not name:
                continue
            value = effective.get(name)
            if value is None or value == "":
                default = variable.get("defaultValue")
                if default not in (None, ""):
                    value = default
                elif variable.get("required"):
                    raise InputValidationError(
                        f"Missing required input variable '{name}'", field=name
                    )
                else:
                    continue
            effective[name] = coerce_input(name, value, variable.get("type", "string"))

        return NodeOutcome(output=effective)
