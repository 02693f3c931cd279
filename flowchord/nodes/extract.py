"""Extract node: LLM-driven structured extraction from the previous output."""

from __future__ import annotations

import json
import time
from typing import Any

import jsonschema

from flowchord.core.structured import OutputSchema, parse_json_text
from flowchord.core.types import Node, NodeOutcome, NodeType
from flowchord.errors.exceptions import ConfigurationError, LLMError, NodeExecutionError
from flowchord.llm.types import Message
from flowchord.nodes.agent import mock_output
from flowchord.nodes.base import BaseNodeHandler, NodeContext

DEFAULT_INSTRUCTIONS = "Extract information from the input"


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=str)


class ExtractNodeHandler(BaseNodeHandler):
    node_type = NodeType.EXTRACT

    async def execute(self, node: Node, ctx: NodeContext) -> NodeOutcome:
        data = node.data
        try:
            schema = OutputSchema.from_config(data.get("jsonSchema"))
        except ValueError as e:
            raise NodeExecutionError(str(e), node_id=node.id) from e

        prompt = ctx.interpolate(data.get("instructions") or DEFAULT_INSTRUCTIONS)
        last_output = ctx.scope.last_output
        if last_output not in (None, ""):
            context = _as_text(last_output)[: ctx.config.extract_max_input_chars]
            prompt = f"{prompt}\n\nData to extract from:\n{context}"

        if ctx.services.mock_agent_response:
            raw: Any = mock_output(ctx.services.mock_agent_response, node)
        else:
            raw = await self._complete(node, ctx, prompt, schema)

        try:
            if schema is not None:
                extracted = schema.validate(raw)
            else:
                extracted = parse_json_text(raw) if isinstance(raw, str) else raw
        except json.JSONDecodeError as e:
            raise NodeExecutionError(
                f"Extraction did not return valid JSON: {e.msg}", node_id=node.id
            ) from e
        except jsonschema.ValidationError as e:
            raise NodeExecutionError(
                f"Extracted data does not match jsonSchema: {e.message}", node_id=node.id
            ) from e

        return NodeOutcome(output=extracted)

    async def _complete(
        self, node: Node, ctx: NodeContext, prompt: str, schema: OutputSchema | None
    ) -> str:
        system = "You extract structured data and answer with JSON only."
        if schema is not None:
            system += schema.to_system_prompt_instruction()

        try:
            provider = ctx.get_llm(node.data.get("model"))
            started = time.perf_counter()
            response = await provider.complete(
                [Message.system(system), Message.user(prompt)],
                temperature=0.0,
                max_tokens=int(node.data.get("maxTokens", 4096)),
            )
        except (ConfigurationError, LLMError) as e:
            raise NodeExecutionError(
                f"Extraction failed: {e.message}", node_id=node.id, retryable=e.retryable
            ) from e

        ctx.console.llm_call(
            provider.model, response.usage.total_tokens, int((time.perf_counter() - started) * 1000)
        )
        return response.content
