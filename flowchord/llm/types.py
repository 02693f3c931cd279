"""Provider-neutral conversation types.

Agent nodes build a list of Message, hand it to a provider, and read an
LLMResponse back; each provider converts to and from its own wire shape.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class LLMToolCall(BaseModel):
    """One function call the model asked for; ``id`` pairs it with its result."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    """A tool offered to the model, usually an MCP tool's name and input schema."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class Message(BaseModel):
    role: MessageRole
    content: str
    # assistant turns that request tools
    tool_calls: list[LLMToolCall] | None = None
    # tool turns answering one of those requests
    tool_call_id: str | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[LLMToolCall] | None = None) -> Message:
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> Message:
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id)


class Usage(BaseModel):
    """Token counts, summed across tool rounds by the agent node."""

    prompt_tokens: int = Field(0, ge=0)
    completion_tokens: int = Field(0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class LLMResponse(BaseModel):
    """A provider's reply.

    ``content`` is empty, never None, when the model only requested tools.
    """

    content: str
    model: str
    usage: Usage = Field(default_factory=Usage)
    finish_reason: str = "stop"
    tool_calls: list[LLMToolCall] | None = None
