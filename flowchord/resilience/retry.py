"""Retry policy applied around node handlers.

Handlers signal transient failures by raising FlowChordError subclasses
with ``retryable=True`` (rate limits, provider timeouts, node timeouts).
Everything else fails the node on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from flowchord.errors.exceptions import FlowChordError, RateLimitError

if TYPE_CHECKING:
    from flowchord.core.config import EngineConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryStrategy(str, Enum):
    """How the wait grows between attempts."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"
    LINEAR = "linear"


_GROWTH: dict[RetryStrategy, Callable[[float, int], float]] = {
    RetryStrategy.FIXED: lambda base, attempt: base,
    RetryStrategy.EXPONENTIAL: lambda base, attempt: base * (2 ** attempt),
    RetryStrategy.LINEAR: lambda base, attempt: base * (attempt + 1),
}


class RetryPolicy:
    """Bounded retries for transient handler errors.

    With ``max_retries=0`` (the engine default) the call runs exactly once.
    A provider's ``retry_after`` hint is honoured up to ``max_delay``.

    Example:
        >>> policy = RetryPolicy.from_config(EngineConfig(max_node_retries=2))
        >>> outcome = await policy.execute(handler.execute, node, ctx)
    """

    RETRYABLE_BUILTINS: tuple[type[Exception], ...] = (
        ConnectionError,
        asyncio.TimeoutError,
    )

    def __init__(
        self,
        max_retries: int = 3,
        strategy: RetryStrategy = RetryStrategy.EXPONENTIAL,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        jitter: bool = True,
        jitter_factor: float = 0.1,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if max_delay < base_delay:
            raise ValueError("max_delay must be >= base_delay")

        self._max_retries = max_retries
        self._strategy = strategy
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._jitter_factor = jitter_factor if jitter else 0.0

    @classmethod
    def from_config(cls, config: EngineConfig) -> RetryPolicy:
        """Policy for node dispatch built from engine limits."""
        return cls(
            max_retries=config.max_node_retries,
            strategy=RetryStrategy.EXPONENTIAL,
            base_delay=config.retry_backoff,
            max_delay=max(30.0, config.retry_backoff),
        )

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def strategy(self) -> RetryStrategy:
        return self._strategy

    def get_delay(self, attempt: int) -> float:
        """Wait before retry number ``attempt + 1``."""
        delay = min(_GROWTH[self._strategy](self._base_delay, attempt), self._max_delay)
        if self._jitter_factor:
            spread = delay * self._jitter_factor
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    def delay_for(self, error: Exception, attempt: int) -> float:
        """Like get_delay, but never shorter than a rate limit's retry_after."""
        delay = self.get_delay(attempt)
        if isinstance(error, RateLimitError) and error.retry_after:
            delay = max(delay, min(error.retry_after, self._max_delay))
        return delay

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self._max_retries:
            return False
        if isinstance(error, FlowChordError):
            return error.retryable
        return isinstance(error, self.RETRYABLE_BUILTINS)

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await ``func(*args, **kwargs)``, retrying transient failures.

        Raises:
            Exception: The last error once retries are exhausted or when it
                is not retryable.
        """
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.delay_for(e, attempt)
                attempt += 1
                logger.info(
                    "Retry %d/%d in %.2fs after: %s", attempt, self._max_retries, delay, e
                )
                await asyncio.sleep(delay)
