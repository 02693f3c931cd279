"""Timeout management for node handlers."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from flowchord.core.types import Node, NodeType
from flowchord.errors.exceptions import NodeTimeoutError

T = TypeVar("T")


class TimeoutManager:
    """Per-node timeout resolution with node-type overrides.

    A node's own ``data.timeout`` (seconds) wins, then the override for its
    type, then the default.

    Example:
        >>> manager = TimeoutManager(default_timeout=300.0, per_type_timeouts={NodeType.HTTP: 30.0})
        >>> result = await manager.execute(handler.execute(node, ctx), node)
    """

    def __init__(
        self,
        default_timeout: float = 300.0,
        per_type_timeouts: dict[NodeType, float] | None = None,
    ) -> None:
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")

        self._default_timeout = default_timeout
        self._per_type_timeouts = dict(per_type_timeouts or {})

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    def get_timeout(self, node: Node) -> float:
        own = node.data.get("timeout")
        if isinstance(own, (int, float)) and not isinstance(own, bool) and own > 0:
            return float(own)
        return self._per_type_timeouts.get(node.type, self._default_timeout)

    async def execute(self, awaitable: Awaitable[T], node: Node) -> T:
        """Await `awaitable` within the node's budget.

        Raises:
            NodeTimeoutError: If the budget elapses first.
        """
        timeout = self.get_timeout(node)
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise NodeTimeoutError(node.id, timeout) from e
