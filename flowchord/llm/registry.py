"""Model name to provider resolution for agent and extract nodes.

A node names only a model (``gpt-4o-mini``, ``claude-3-5-haiku-latest``)
or pins a backend with ``provider/model``; the registry picks the backend
and builds it with the keys and timeouts from Settings.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Any, Callable

from flowchord.errors.exceptions import ModelNotFoundError
from flowchord.llm.base import BaseLLMProvider

ProviderFactory = Callable[..., BaseLLMProvider]


@dataclass
class ProviderInfo:
    """A backend, the model-name prefixes it claims and its constructor defaults."""

    name: str
    factory: ProviderFactory
    prefixes: list[str]
    defaults: dict[str, Any] = field(default_factory=dict)


class ProviderRegistry:
    """Backends keyed by name, looked up by model prefix.

    When prefixes overlap the longest match wins, so ``gpt-4o`` can be
    routed away from a generic ``gpt-`` entry.

    Example:
        >>> registry = ProviderRegistry()
        >>> registry.register("local", make_local, ["llama"], base_url="http://gpu:8000/v1")
        >>> registry.detect_provider("llama3-70b")
        'local'
    """

    def __init__(self) -> None:
        self._entries: dict[str, ProviderInfo] = {}
        self._by_prefix: list[tuple[str, str]] = []

    def register(
        self,
        name: str,
        factory: ProviderFactory,
        prefixes: list[str],
        **defaults: Any,
    ) -> None:
        self._entries[name] = ProviderInfo(name, factory, list(prefixes), defaults)
        self._reindex()

    def unregister(self, name: str) -> bool:
        removed = self._entries.pop(name, None) is not None
        if removed:
            self._reindex()
        return removed

    def _reindex(self) -> None:
        self._by_prefix = sorted(
            ((prefix, entry.name) for entry in self._entries.values() for prefix in entry.prefixes),
            key=lambda pair: -len(pair[0]),
        )

    def detect_provider(self, model: str) -> str:
        pinned, slash, _ = model.partition("/")
        if slash and pinned in self._entries:
            return pinned
        match = next((name for prefix, name in self._by_prefix if model.startswith(prefix)), None)
        if match is None:
            raise ModelNotFoundError(model)
        return match

    def create_provider(self, model: str, **overrides: Any) -> BaseLLMProvider:
        """Build the backend for ``model``; call kwargs override registered defaults."""
        entry = self._entries[self.detect_provider(model)]
        bare = model.removeprefix(f"{entry.name}/")
        return entry.factory(model=bare, **{**entry.defaults, **overrides})

    def list_providers(self) -> list[str]:
        return list(self._entries)


# name -> (module, class); imported on first use so the SDKs stay optional at import time
_BUILTIN: dict[str, tuple[str, str]] = {
    "openai": ("flowchord.llm.openai", "OpenAIProvider"),
    "anthropic": ("flowchord.llm.anthropic", "AnthropicProvider"),
    "mock": ("flowchord.llm.mock", "MockLLMProvider"),
}


def _lazy(name: str) -> ProviderFactory:
    module_name, class_name = _BUILTIN[name]

    def factory(**kwargs: Any) -> BaseLLMProvider:
        provider_cls = getattr(importlib.import_module(module_name), class_name)
        return provider_cls(**kwargs)

    return factory


def build_default_registry(
    *,
    openai_api_key: str | None = None,
    openai_base_url: str | None = None,
    anthropic_api_key: str | None = None,
    timeout: float = 120.0,
) -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(
        "openai",
        _lazy("openai"),
        ["gpt-", "o1", "o3", "o4", "chatgpt-"],
        api_key=openai_api_key or None,
        base_url=openai_base_url or None,
        timeout=timeout,
    )
    registry.register(
        "anthropic",
        _lazy("anthropic"),
        ["claude-"],
        api_key=anthropic_api_key or None,
        timeout=timeout,
    )
    registry.register("mock", _lazy("mock"), ["mock"])
    return registry
