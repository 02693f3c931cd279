"""Chat-completions backend for ``gpt-*`` and ``o*`` models."""

from __future__ import annotations

import json
import os
from typing import Any

from flowchord.errors.exceptions import MissingAPIKeyError
from flowchord.llm.base import BaseLLMProvider, translate_sdk_error
from flowchord.llm.types import LLMResponse, LLMToolCall, Message, ToolDefinition, Usage

DEFAULT_MODEL = "gpt-4o-mini"

# Reasoning models reject temperature and count output via max_completion_tokens.
REASONING_PREFIXES = ("o1", "o3", "o4")


def _function_spec(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
        },
    }


def _wire_message(msg: Message) -> dict[str, Any]:
    wire: dict[str, Any] = {"role": msg.role.value, "content": msg.content}
    if msg.tool_calls:
        wire["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in msg.tool_calls
        ]
    if msg.tool_call_id:
        wire["tool_call_id"] = msg.tool_call_id
    return wire


class OpenAIProvider(BaseLLMProvider):
    """Agent/extract backend on ``AsyncOpenAI``.

    ``base_url`` points the same client at any OpenAI-compatible server.
    The SDK client is created on first use so a workflow that never
    reaches an agent node does not need ``OPENAI_API_KEY``.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url or None
        self._timeout = timeout
        self._client: Any = None

    @property
    def model(self) -> str:
        return self._model

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def is_reasoning_model(self) -> bool:
        return self._model.startswith(REASONING_PREFIXES)

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise MissingAPIKeyError("openai")

        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(
            api_key=self._api_key, base_url=self._base_url, timeout=self._timeout
        )
        return self._client

    async def complete(
        self,
        messages: list[Message],
        *,
        tools: list[ToolDefinition] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        import openai

        client = self._get_client()
        body = self._request_body(messages, tools, temperature, max_tokens)
        body.update(kwargs)

        try:
            completion = await client.chat.completions.create(**body)
        except openai.APIError as e:
            raise translate_sdk_error(
                openai, e, provider="openai", model=self._model, timeout=self._timeout
            ) from e

        return self._to_response(completion)

    def _request_body(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None,
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model,
            "messages": self._convert_messages(messages),
        }
        if self.is_reasoning_model:
            body["max_completion_tokens"] = max_tokens
        else:
            body["temperature"] = temperature
            body["max_tokens"] = max_tokens
        if tools:
            body["tools"] = [_function_spec(tool) for tool in tools]
        return body

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        return [_wire_message(msg) for msg in messages]

    def _to_response(self, completion: Any) -> LLMResponse:
        choice = completion.choices[0]
        requested = choice.message.tool_calls or []
        calls = [
            LLMToolCall(
                id=call.id,
                name=call.function.name,
                arguments=self._parse_tool_arguments(call.function.arguments),
            )
            for call in requested
        ]

        counts = completion.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=completion.model,
            usage=Usage(
                prompt_tokens=counts.prompt_tokens if counts else 0,
                completion_tokens=counts.completion_tokens if counts else 0,
            ),
            finish_reason=choice.finish_reason or "stop",
            tool_calls=calls or None,
        )

    @staticmethod
    def _parse_tool_arguments(arguments: str) -> dict[str, Any]:
        """Decode a tool call's JSON arguments; anything but an object is dropped."""
        try:
            parsed = json.loads(arguments)
        except (json.JSONDecodeError, TypeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}
