"""Unit tests for the event stream."""

from __future__ import annotations

import asyncio
import json

import pytest

from flowchord.core.events import EventBus, EventStream, EventType
from flowchord.core.types import NodeType


class TestEventStream:
    """Tests for EventStream."""

    @pytest.mark.asyncio
    async def test_sequence_numbers(self) -> None:
        """Events are numbered from 0 in emit order."""
        stream = EventStream("exec-1")
        await stream.emit(EventType.WORKFLOW_STARTED)
        await stream.emit(EventType.NODE_STARTED, node_id="a", node_type=NodeType.AGENT)

        events = stream.events()
        assert [e.seq for e in events] == [0, 1]
        assert events[1].node_id == "a"
        assert events[1].execution_id == "exec-1"

    @pytest.mark.asyncio
    async def test_concurrent_emits_get_unique_seq(self) -> None:
        """Concurrent writers never share or skip a sequence number."""
        stream = EventStream("exec-1")

        await asyncio.gather(
            *(stream.emit(EventType.NODE_STARTED, node_id=f"n{i}") for i in range(50))
        )

        assert sorted(e.seq for e in stream.events()) == list(range(50))

    @pytest.mark.asyncio
    async def test_subscriber_receives_replay_then_live(self) -> None:
        """subscribe() replays history newer than `after` and then follows."""
        stream = EventStream("exec-1")
        await stream.emit(EventType.WORKFLOW_STARTED)
        await stream.emit(EventType.NODE_STARTED, node_id="a")

        queue = stream.subscribe(after=0)
        await stream.emit(EventType.NODE_COMPLETED, node_id="a")

        first = queue.get_nowait()
        second = queue.get_nowait()
        assert (first.seq, second.seq) == (1, 2)

    @pytest.mark.asyncio
    async def test_iter_events_ends_on_close(self) -> None:
        """iter_events stops when the stream closes."""
        stream = EventStream("exec-1")

        async def produce() -> None:
            await stream.emit(EventType.WORKFLOW_STARTED)
            await stream.emit(EventType.WORKFLOW_COMPLETED, data={"output": "done"})
            await stream.close()

        collected: list[EventType] = []

        async def consume() -> None:
            async for event in stream.iter_events():
                collected.append(event.type)

        await asyncio.gather(consume(), produce())

        assert collected == [EventType.WORKFLOW_STARTED, EventType.WORKFLOW_COMPLETED]
        assert stream.closed

    @pytest.mark.asyncio
    async def test_subscribe_after_close_replays(self) -> None:
        """A late subscriber still gets the full history, then the end marker."""
        stream = EventStream("exec-1")
        await stream.emit(EventType.WORKFLOW_STARTED)
        await stream.close()

        seen = [e.type async for e in stream.iter_events()]

        assert seen == [EventType.WORKFLOW_STARTED]

    @pytest.mark.asyncio
    async def test_reopen(self) -> None:
        """A reopened stream keeps numbering after the earlier segment."""
        stream = EventStream("exec-1")
        await stream.emit(EventType.WORKFLOW_PAUSED)
        await stream.close()

        stream.reopen()
        event = await stream.emit(EventType.WORKFLOW_RESUMED)

        assert not stream.closed
        assert event.seq == 1

    @pytest.mark.asyncio
    async def test_sse_frame(self) -> None:
        """to_sse renders an event/data frame with camelCase JSON."""
        stream = EventStream("exec-1")
        event = await stream.emit(
            EventType.NODE_COMPLETED,
            node_id="a",
            node_type=NodeType.IF_ELSE,
            data={"branch": "if"},
        )

        frame = event.to_sse()
        header, data_line, *_ = frame.split("\n")

        assert header == "event: node_completed"
        payload = json.loads(data_line.removeprefix("data: "))
        assert payload["nodeId"] == "a"
        assert payload["nodeType"] == "if-else"
        assert payload["executionId"] == "exec-1"
        assert payload["data"] == {"branch": "if"}
        assert frame.endswith("\n\n")

    @pytest.mark.asyncio
    async def test_iter_sse(self) -> None:
        """iter_sse yields one frame per event."""
        stream = EventStream("exec-1")
        await stream.emit(EventType.WORKFLOW_STARTED)
        await stream.close()

        frames = [f async for f in stream.iter_sse()]

        assert len(frames) == 1
        assert frames[0].startswith("event: workflow_started\n")


class TestEventBus:
    """Tests for EventBus."""

    def test_get_or_create(self) -> None:
        """The same execution id maps to the same stream."""
        bus = EventBus()
        stream = bus.get_or_create("e1")

        assert bus.get_or_create("e1") is stream
        assert bus.get("e1") is stream
        assert bus.get("e2") is None
        assert len(bus) == 1

    def test_discard(self) -> None:
        """discard forgets a stream."""
        bus = EventBus()
        bus.get_or_create("e1")
        bus.discard("e1")

        assert bus.get("e1") is None

    def test_release_keeps_stream_replayable(self) -> None:
        """A released stream is no longer active but can still be fetched."""
        bus = EventBus()
        stream = bus.get_or_create("e1")
        bus.release("e1")

        assert bus.active == 0
        assert bus.get("e1") is stream
        assert bus.get_or_create("e1") is stream
        assert bus.active == 1

    def test_release_evicts_oldest(self) -> None:
        """Only the newest retain_finished released streams are kept."""
        bus = EventBus(retain_finished=2)
        for execution_id in ("e1", "e2", "e3"):
            bus.get_or_create(execution_id)
            bus.release(execution_id)

        assert bus.get("e1") is None
        assert bus.get("e2") is not None
        assert bus.get("e3") is not None
        assert len(bus) == 2

    def test_release_unknown_is_noop(self) -> None:
        bus = EventBus()
        bus.release("ghost")

        assert len(bus) == 0
