"""Provider interface used by agent and extract nodes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from flowchord.errors.exceptions import (
    APIError,
    AuthenticationError,
    LLMError,
    RateLimitError,
    TimeoutError,
)
from flowchord.llm.types import LLMResponse, Message, ToolDefinition


class BaseLLMProvider(ABC):
    """One chat model behind a single ``complete`` call.

    Implementations translate SDK failures into the FlowChord error
    hierarchy so the executor's retry policy can tell transient errors
    (rate limits, timeouts) from permanent ones.
    """

    @property
    @abstractmethod
    def model(self) -> str: ...

    @property
    @abstractmethod
    def provider_name(self) -> str: ...

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        tools: list[ToolDefinition] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        """Send a conversation and return the model's reply.

        When ``tools`` are given the reply may carry ``tool_calls`` instead
        of (or alongside) text; the agent node runs them and calls again.

        Raises:
            RateLimitError: Retryable, may carry ``retry_after``.
            TimeoutError: Retryable.
            AuthenticationError: The key was refused.
            APIError: Any other provider failure.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.provider_name}:{self.model})"


def retry_after_seconds(error: Exception) -> float | None:
    """Read a ``Retry-After`` header off an SDK status error, if any."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    try:
        return float(headers.get("retry-after"))
    except (TypeError, ValueError):
        return None


def translate_sdk_error(
    sdk: Any, error: Exception, *, provider: str, model: str, timeout: float
) -> LLMError:
    """Map an openai/anthropic SDK exception onto FlowChord's LLM errors.

    Both SDKs are generated from the same template and expose the same
    exception names, so one table serves both. Callers pass only
    subclasses of ``sdk.APIError``; client-side 4xx rejections are not
    retryable.
    """
    message = str(error)
    if isinstance(error, sdk.RateLimitError):
        return RateLimitError(
            message, provider=provider, model=model, retry_after=retry_after_seconds(error)
        )
    if isinstance(error, sdk.AuthenticationError):
        return AuthenticationError(message, provider=provider)
    if isinstance(error, sdk.APITimeoutError):
        return TimeoutError(message, provider=provider, model=model, timeout_seconds=timeout)
    status = getattr(error, "status_code", None)
    mapped = APIError(message, provider=provider, model=model, status_code=status)
    if status is not None and 400 <= status < 500 and status != 408:
        mapped.retryable = False
    return mapped
