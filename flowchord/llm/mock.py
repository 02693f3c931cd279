"""Deterministic provider used for mock runs and tests."""

from __future__ import annotations

from typing import Any

from flowchord.llm.base import BaseLLMProvider
from flowchord.llm.types import (
    LLMResponse,
    LLMToolCall,
    Message,
    MessageRole,
    ToolDefinition,
    Usage,
)


class MockLLMProvider(BaseLLMProvider):
    """Returns scripted responses instead of calling a model.

    With no script it echoes the last user message prefixed by `response`,
    which is enough to trace variable flow through a workflow.

    Example:
        >>> provider = MockLLMProvider(responses=["first", "second"])
    """

    def __init__(
        self,
        model: str = "mock",
        response: str | None = None,
        responses: list[str] | None = None,
        tool_calls_sequence: list[list[LLMToolCall] | None] | None = None,
    ) -> None:
        self._model = model
        self._response = response
        self._responses = list(responses or [])
        self._tool_calls_sequence = list(tool_calls_sequence or [])
        self.call_count = 0
        self.received_messages: list[list[Message]] = []
        self.received_tools: list[list[ToolDefinition] | None] = []

    @property
    def model(self) -> str:
        return self._model

    @property
    def provider_name(self) -> str:
        return "mock"

    async def complete(
        self,
        messages: list[Message],
        *,
        tools: list[ToolDefinition] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        turn = self.call_count
        self.call_count += 1
        self.received_messages.append(list(messages))
        self.received_tools.append(tools)

        script = self._tool_calls_sequence
        requested = script[turn] if turn < len(script) else None
        return LLMResponse(
            content=self._reply_for(turn, messages),
            model=self._model,
            usage=Usage(
                prompt_tokens=sum(len(m.content.split()) for m in messages),
                completion_tokens=5,
            ),
            finish_reason="tool_calls" if requested else "stop",
            tool_calls=requested,
        )

    def _reply_for(self, turn: int, messages: list[Message]) -> str:
        if turn < len(self._responses):
            return self._responses[turn]
        if self._response is not None:
            return self._response
        return next((m.content for m in reversed(messages) if m.role == MessageRole.USER), "")
