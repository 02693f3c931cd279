"""Messages-API backend for ``claude-*`` models."""

from __future__ import annotations

import os
from typing import Any

from flowchord.errors.exceptions import MissingAPIKeyError
from flowchord.llm.base import BaseLLMProvider, translate_sdk_error
from flowchord.llm.types import (
    LLMResponse,
    LLMToolCall,
    Message,
    MessageRole,
    ToolDefinition,
    Usage,
)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
MAX_TEMPERATURE = 1.0


def _tool_result_block(msg: Message) -> dict[str, Any]:
    return {"type": "tool_result", "tool_use_id": msg.tool_call_id or "", "content": msg.content}


def _assistant_blocks(msg: Message) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = [{"type": "text", "text": msg.content}] if msg.content else []
    blocks.extend(
        {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
        for call in msg.tool_calls or []
    )
    return blocks


class AnthropicProvider(BaseLLMProvider):
    """Agent/extract backend on ``AsyncAnthropic``.

    The messages API takes the system prompt as a separate argument and
    expects every tool result for one assistant turn inside a single user
    message, so the conversation is reshaped before sending.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._base_url = base_url
        self._timeout = timeout
        self._client: Any = None

    @property
    def model(self) -> str:
        return self._model

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise MissingAPIKeyError("anthropic")

        from anthropic import AsyncAnthropic

        options: dict[str, Any] = {"api_key": self._api_key, "timeout": self._timeout}
        if self._base_url:
            options["base_url"] = self._base_url
        self._client = AsyncAnthropic(**options)
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
        import anthropic

        client = self._get_client()
        system, turns = self._extract_system_and_messages(messages)
        body: dict[str, Any] = {
            "model": self._model,
            "messages": turns,
            "max_tokens": max_tokens,
            "temperature": min(temperature, MAX_TEMPERATURE),
        }
        if system:
            body["system"] = system
        if tools:
            body["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters,
                }
                for tool in tools
            ]
        body.update(kwargs)

        try:
            reply = await client.messages.create(**body)
        except anthropic.APIError as e:
            raise translate_sdk_error(
                anthropic, e, provider="anthropic", model=self._model, timeout=self._timeout
            ) from e

        return self._to_response(reply)

    def _extract_system_and_messages(
        self, messages: list[Message]
    ) -> tuple[str | None, list[dict[str, Any]]]:
        system_parts: list[str] = []
        turns: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append(msg.content)
                continue

            if msg.role == MessageRole.TOOL:
                block = _tool_result_block(msg)
                previous = turns[-1] if turns else None
                # Consecutive tool results share one user turn.
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                ):
                    previous["content"].append(block)
                else:
                    turns.append({"role": "user", "content": [block]})
            elif msg.role == MessageRole.ASSISTANT and msg.tool_calls:
                turns.append({"role": "assistant", "content": _assistant_blocks(msg)})
            elif msg.role == MessageRole.USER:
                turns.append({"role": "user", "content": msg.content})
            else:
                turns.append({"role": "assistant", "content": msg.content})

        return "\n\n".join(system_parts) or None, turns

    def _to_response(self, reply: Any) -> LLMResponse:
        text = "".join(block.text for block in reply.content if block.type == "text")
        calls = [
            LLMToolCall(
                id=block.id,
                name=block.name,
                arguments=block.input if isinstance(block.input, dict) else {},
            )
            for block in reply.content
            if block.type == "tool_use"
        ]
        return LLMResponse(
            content=text,
            model=reply.model,
            usage=Usage(
                prompt_tokens=reply.usage.input_tokens,
                completion_tokens=reply.usage.output_tokens,
            ),
            finish_reason=reply.stop_reason or "end_turn",
            tool_calls=calls or None,
        )
