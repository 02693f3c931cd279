"""Ordered execution events and their delivery to subscribers.

Every event of one execution passes through a single EventStream, which
assigns sequence numbers under a lock. That funnel is the only writer, so
concurrent branches cannot interleave a node's started/completed pair out of
order or hand two events the same sequence number.
"""

from __future__ import annotations

import asyncio
import json
from collections import OrderedDict
from collections.abc import AsyncIterator
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from flowchord.core.types import CamelModel, NodeType, utcnow


class EventType(str, Enum):
    """Event types emitted during a run."""

    WORKFLOW_STARTED = "workflow_started"
    NODE_STARTED = "node_started"
    NODE_COMPLETED = "node_completed"
    NODE_FAILED = "node_failed"
    NODE_PAUSED = "node_paused"
    WORKFLOW_PAUSED = "workflow_paused"
    WORKFLOW_RESUMED = "workflow_resumed"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_FAILED = "workflow_failed"
    WORKFLOW_CANCELLED = "workflow_cancelled"


class ExecutionEvent(CamelModel):
    """One entry of the ordered event log."""

    seq: int
    type: EventType
    execution_id: str
    node_id: str | None = None
    node_type: NodeType | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    def to_sse(self) -> str:
        """Render as a Server-Sent Events frame."""
        payload = json.dumps(self.to_dict(), default=str)
        return f"event: {self.type.value}\ndata: {payload}\n\n"


_CLOSED = object()


class EventStream:
    """Single-writer event log for one execution with fan-out to subscribers.

    Example:
        >>> stream = EventStream("exec_1")
        >>> queue = stream.subscribe()
        >>> await stream.emit(EventType.WORKFLOW_STARTED)
    """

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        self._events: list[ExecutionEvent] = []
        self._subscribers: list[asyncio.Queue] = []
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(
        self,
        type: EventType,
        *,
        node_id: str | None = None,
        node_type: NodeType | None = None,
        data: dict[str, Any] | None = None,
    ) -> ExecutionEvent:
        """Append an event and deliver it to every subscriber."""
        async with self._lock:
            event = ExecutionEvent(
                seq=len(self._events),
                type=type,
                execution_id=self.execution_id,
                node_id=node_id,
                node_type=node_type,
                data=data or {},
            )
            self._events.append(event)
            for queue in list(self._subscribers):
                queue.put_nowait(event)
            return event

    def subscribe(self, after: int | None = -1) -> asyncio.Queue:
        """Register a subscriber queue pre-filled with events newer than `after`.

        Pass None to receive only events emitted from now on.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if after is not None:
            for event in self.events(after):
                queue.put_nowait(event)
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    async def close(self) -> None:
        """Mark the stream finished for this run segment and wake subscribers."""
        async with self._lock:
            self._closed = True
            for queue in self._subscribers:
                queue.put_nowait(_CLOSED)
            self._subscribers.clear()

    def reopen(self) -> None:
        """Accept new subscribers again after a resume."""
        self._closed = False

    def events(self, after: int = -1) -> list[ExecutionEvent]:
        """Events with a sequence number greater than `after`."""
        return [e for e in self._events if e.seq > after]

    async def iter_events(self, after: int | None = -1) -> AsyncIterator[ExecutionEvent]:
        """Yield events until the current run segment finishes or suspends."""
        queue = self.subscribe(after)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            self.unsubscribe(queue)

    async def iter_sse(self, after: int | None = -1) -> AsyncIterator[str]:
        """Yield SSE frames; the body of the streaming HTTP response."""
        async for event in self.iter_events(after):
            yield event.to_sse()


class EventBus:
    """Registry of per-execution event streams.

    Streams of running and waiting executions are kept until released.
    Released (terminal) streams stay replayable until ``retain_finished``
    newer ones push them out.
    """

    def __init__(self, retain_finished: int = 100) -> None:
        self._streams: dict[str, EventStream] = {}
        self._finished: OrderedDict[str, EventStream] = OrderedDict()
        self._retain_finished = retain_finished

    def get_or_create(self, execution_id: str) -> EventStream:
        stream = self._streams.get(execution_id) or self._finished.pop(execution_id, None)
        if stream is None:
            stream = EventStream(execution_id)
        self._streams[execution_id] = stream
        return stream

    def get(self, execution_id: str) -> EventStream | None:
        return self._streams.get(execution_id) or self._finished.get(execution_id)

    def release(self, execution_id: str) -> None:
        """Move a terminal execution's stream to the bounded replay cache."""
        stream = self._streams.pop(execution_id, None)
        if stream is None:
            return
        self._finished[execution_id] = stream
        while len(self._finished) > self._retain_finished:
            self._finished.popitem(last=False)

    def discard(self, execution_id: str) -> None:
        self._streams.pop(execution_id, None)
        self._finished.pop(execution_id, None)

    @property
    def active(self) -> int:
        return len(self._streams)

    def __len__(self) -> int:
        return len(self._streams) + len(self._finished)
