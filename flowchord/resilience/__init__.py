"""Retry and timeout policies applied around node handlers."""

from flowchord.resilience.retry import RetryPolicy, RetryStrategy
from flowchord.resilience.timeout import TimeoutManager

__all__ = ["RetryPolicy", "RetryStrategy", "TimeoutManager"]
