"""Runtime variable scope for one execution."""

from __future__ import annotations

import copy
import json
import re
from typing import Any

from flowchord.core.types import Node

_NON_IDENT = re.compile(r"[^\w]+")

# Output key a loop body uses to add an item to its while node's loopResults
APPEND_LOOP_RESULT = "__appendToLoopResults"


def normalize_key(name: str) -> str:
    """Make a node id or name addressable in expressions (``node-1`` -> ``node_1``)."""
    return _NON_IDENT.sub("_", name.strip()).strip("_") or name


def _json_safe(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


class Scope:
    """Mapping of variable names visible to one execution.

    Seeded with the caller's ``input`` and grown node by node. Loop counters
    are kept as a stack of active while frames; ``iteration`` always refers to
    the innermost active loop.
    """

    def __init__(self, input: dict[str, Any] | None = None) -> None:
        self.input: dict[str, Any] = dict(input or {})
        self.last_output: Any = None
        self.outputs: dict[str, Any] = {}
        self.aliases: dict[str, str] = {}
        self.state: dict[str, Any] = {}
        self.loops: dict[str, int] = {}
        self.loop_results: dict[str, list[Any]] = {}
        self.chat_history: list[dict[str, str]] = []

    # Writes, performed only by the graph walker

    def record_output(self, node: Node, output: Any, *, update_last: bool = True) -> None:
        self.outputs[node.id] = output
        if node.name:
            self.aliases[normalize_key(node.name)] = node.id
        if update_last:
            self.last_output = output

    def set_state(self, key: str, value: Any) -> None:
        self.state[key] = value

    def enter_loop(self, node_id: str) -> int:
        """Enter or re-enter a while frame and return its iteration counter."""
        if node_id in self.loops:
            self.loops[node_id] += 1
        else:
            self.loops[node_id] = 0
            self.loop_results[node_id] = []
        return self.loops[node_id]

    def exit_loop(self, node_id: str) -> list[Any]:
        """Drop the frame and hand back what its body collected."""
        self.loops.pop(node_id, None)
        return self.loop_results.pop(node_id, [])

    def append_loop_result(self, value: Any) -> str | None:
        """Add to the innermost active loop's results; returns its node id."""
        if not self.loops:
            return None
        node_id = next(reversed(self.loops))
        self.loop_results.setdefault(node_id, []).append(value)
        return node_id

    @property
    def iteration(self) -> int | None:
        if not self.loops:
            return None
        return next(reversed(self.loops.values()))

    def append_chat(self, user: str, assistant: str) -> None:
        self.chat_history.append({"user": user, "assistant": assistant})

    # Reads

    def as_names(self) -> dict[str, Any]:
        """Flat name table read by the expression resolver."""
        names: dict[str, Any] = {}
        names.update(self.state)
        for alias, node_id in self.aliases.items():
            names[alias] = self.outputs.get(node_id)
        for node_id, output in self.outputs.items():
            names[node_id] = output
            names.setdefault(normalize_key(node_id), output)
        names["input"] = self.input
        names["lastOutput"] = self.last_output
        names["state"] = self.state
        names["chatHistory"] = self.chat_history
        names["iteration"] = self.iteration
        return names

    # Checkpointing

    def snapshot(self) -> dict[str, Any]:
        """Deep, JSON-safe copy of every variable including loop frames."""
        return _json_safe({
            "input": self.input,
            "lastOutput": self.last_output,
            "outputs": self.outputs,
            "aliases": self.aliases,
            "state": self.state,
            "loops": list(self.loops.items()),
            "loopResults": self.loop_results,
            "chatHistory": self.chat_history,
        })

    @classmethod
    def restore(cls, snapshot: dict[str, Any]) -> Scope:
        data = copy.deepcopy(snapshot)
        scope = cls(data.get("input"))
        scope.last_output = data.get("lastOutput")
        scope.outputs = data.get("outputs", {})
        scope.aliases = data.get("aliases", {})
        scope.state = data.get("state", {})
        scope.loops = {node_id: int(count) for node_id, count in data.get("loops", [])}
        scope.loop_results = data.get("loopResults", {})
        scope.chat_history = data.get("chatHistory", [])
        return scope
