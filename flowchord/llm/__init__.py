"""LLM provider interface and built-in providers."""

from flowchord.llm.base import BaseLLMProvider
from flowchord.llm.mock import MockLLMProvider
from flowchord.llm.registry import ProviderRegistry, build_default_registry
from flowchord.llm.types import (
    LLMResponse,
    LLMToolCall,
    Message,
    MessageRole,
    ToolDefinition,
    Usage,
)

__all__ = [
    "BaseLLMProvider",
    "MockLLMProvider",
    "ProviderRegistry",
    "build_default_registry",
    "LLMResponse",
    "LLMToolCall",
    "Message",
    "MessageRole",
    "ToolDefinition",
    "Usage",
]
