"""Unit tests for Scope."""

from __future__ import annotations

from flowchord.core.scope import Scope, normalize_key
from flowchord.core.types import Node


def _node(node_id: str, name: str | None = None) -> Node:
    data = {"nodeName": name} if name else {}
    return Node(id=node_id, type="agent", data=data)


class TestScope:
    """Tests for variable bookkeeping."""

    def test_seeded_with_input(self) -> None:
        """Input is copied, not shared."""
        raw = {"a": 1}
        scope = Scope(raw)
        raw["a"] = 2

        assert scope.as_names()["input"] == {"a": 1}
        assert scope.last_output is None

    def test_record_output_updates_last(self) -> None:
        """Outputs are stored by id and become lastOutput."""
        scope = Scope()
        scope.record_output(_node("n1"), "one")

        names = scope.as_names()
        assert names["n1"] == "one"
        assert names["lastOutput"] == "one"

    def test_record_output_without_last(self) -> None:
        """Control nodes may record without touching lastOutput."""
        scope = Scope()
        scope.record_output(_node("n1"), "one")
        scope.record_output(_node("cond"), {"branch": "if"}, update_last=False)

        assert scope.last_output == "one"
        assert scope.as_names()["cond"] == {"branch": "if"}

    def test_name_alias(self) -> None:
        """Named nodes are reachable by their normalized name."""
        scope = Scope()
        scope.record_output(_node("agent-7", "Summarize Text"), "short")

        names = scope.as_names()
        assert names["Summarize_Text"] == "short"
        assert names["agent_7"] == "short"
        assert names["agent-7"] == "short"

    def test_state(self) -> None:
        """State writes show up as top-level names and under state."""
        scope = Scope()
        scope.set_state("count", 3)

        names = scope.as_names()
        assert names["count"] == 3
        assert names["state"] == {"count": 3}


class TestLoopFrames:
    """Tests for while-loop iteration counters."""

    def test_enter_and_reenter(self) -> None:
        """First entry is 0, each re-entry adds one."""
        scope = Scope()

        assert scope.iteration is None
        assert scope.enter_loop("w") == 0
        assert scope.enter_loop("w") == 1
        assert scope.iteration == 1

    def test_nested_loops(self) -> None:
        """iteration refers to the innermost active loop."""
        scope = Scope()
        scope.enter_loop("outer")
        scope.enter_loop("outer")
        scope.enter_loop("inner")

        assert scope.iteration == 0

        scope.exit_loop("inner")
        assert scope.iteration == 1

    def test_exit_resets(self) -> None:
        """Leaving a loop drops its counter so a later entry starts at 0."""
        scope = Scope()
        scope.enter_loop("w")
        scope.enter_loop("w")
        scope.exit_loop("w")

        assert scope.iteration is None
        assert scope.enter_loop("w") == 0


class TestSnapshot:
    """Tests for checkpoint snapshots."""

    def test_round_trip(self) -> None:
        """restore(snapshot()) reproduces every variable, loop frames included."""
        scope = Scope({"q": "tides"})
        scope.record_output(_node("n1", "First"), {"items": [1, 2]})
        scope.set_state("flag", True)
        scope.enter_loop("w")
        scope.enter_loop("w")
        scope.enter_loop("w")
        scope.append_chat("hello", "hi there")

        restored = Scope.restore(scope.snapshot())

        assert restored.as_names() == scope.as_names()
        assert restored.iteration == 2
        assert restored.chat_history == [{"user": "hello", "assistant": "hi there"}]

    def test_snapshot_is_detached(self) -> None:
        """Mutating the live scope does not change a taken snapshot."""
        scope = Scope()
        scope.record_output(_node("n1"), {"items": [1]})
        snapshot = scope.snapshot()

        scope.outputs["n1"]["items"].append(2)

        assert snapshot["outputs"]["n1"] == {"items": [1]}

    def test_snapshot_is_json_safe(self) -> None:
        """Non-JSON values are stringified."""
        scope = Scope()
        scope.set_state("when", object())

        assert isinstance(scope.snapshot()["state"]["when"], str)


def test_normalize_key() -> None:
    """Non-identifier characters collapse to underscores."""
    assert normalize_key("node-1") == "node_1"
    assert normalize_key(" Fetch  Data ") == "Fetch_Data"
    assert normalize_key("---") == "---"


class TestLoopResults:
    """Tests for values collected by while loop bodies."""

    def test_append_goes_to_innermost_loop(self) -> None:
        """Appends land on the innermost frame; exit hands the list back."""
        scope = Scope()
        scope.enter_loop("outer")
        scope.append_loop_result("o1")
        scope.enter_loop("inner")

        assert scope.append_loop_result("i1") == "inner"
        assert scope.exit_loop("inner") == ["i1"]
        assert scope.append_loop_result("o2") == "outer"
        assert scope.exit_loop("outer") == ["o1", "o2"]

    def test_append_outside_loop(self) -> None:
        """Without an active loop nothing is collected."""
        scope = Scope()

        assert scope.append_loop_result("x") is None
        assert scope.loop_results == {}

    def test_reentry_keeps_results(self) -> None:
        """Re-entering a running loop does not clear what it collected."""
        scope = Scope()
        scope.enter_loop("w")
        scope.append_loop_result(1)
        scope.enter_loop("w")

        assert scope.loop_results == {"w": [1]}

    def test_survives_snapshot(self) -> None:
        scope = Scope()
        scope.enter_loop("w")
        scope.append_loop_result({"n": 1})

        restored = Scope.restore(scope.snapshot())

        assert restored.exit_loop("w") == [{"n": 1}]
