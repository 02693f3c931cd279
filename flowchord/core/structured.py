"""Structured output support for agent and extract nodes.

Models asked for JSON often wrap it in markdown fences or surround it with
prose. These helpers recover the JSON document and check it against a
JSON Schema supplied in the node's configuration.
"""
from __future__ import annotations

import json
import re
from typing import Any

import jsonschema

_FENCE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```$", re.DOTALL)


class OutputSchema:
    """Wraps a JSON Schema document for LLM structured output.

    Example:
        >>> schema = OutputSchema.from_config('{"type": "object", "required": ["name"]}')
        >>> schema.validate('```json\\n{"name": "Ada"}\\n```')
        {'name': 'Ada'}
    """

    def __init__(self, schema: dict[str, Any], name: str = "extraction") -> None:
        jsonschema.Draft202012Validator.check_schema(schema)
        self._schema = schema
        self._name = name

    @classmethod
    def from_config(cls, raw: str | dict[str, Any] | None, name: str = "extraction") -> OutputSchema | None:
        """Build from a node's ``jsonSchema`` field, which may be a JSON string.

        Raises:
            ValueError: If the string is not JSON or not a valid schema.
        """
        if raw is None or raw == "" or raw == {}:
            return None
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValueError(f"jsonSchema is not valid JSON: {e.msg}") from e
        if not isinstance(raw, dict):
            raise ValueError("jsonSchema must be a JSON object")
        try:
            return cls(raw, name=name)
        except jsonschema.SchemaError as e:
            raise ValueError(f"jsonSchema is not a valid schema: {e.message}") from e

    @property
    def json_schema(self) -> dict[str, Any]:
        return self._schema

    def to_system_prompt_instruction(self) -> str:
        """Suffix for the system prompt asking for a bare JSON answer."""
        rendered = json.dumps(self._schema, indent=2)
        return (
            "\n\nReply with valid JSON matching this JSON Schema:\n"
            f"```json\n{rendered}\n```\n"
            "No commentary before or after it."
        )

    def validate(self, data: str | Any) -> Any:
        """Parse (when given text) and validate against the schema.

        Raises:
            json.JSONDecodeError: If the text holds no JSON document.
            jsonschema.ValidationError: If the document violates the schema.
        """
        parsed = parse_json_text(data) if isinstance(data, str) else data
        jsonschema.validate(parsed, self._schema)
        return parsed


def parse_json_text(text: str) -> Any:
    """Parse the JSON document inside model output.

    Raises:
        json.JSONDecodeError: If no JSON document can be recovered.
    """
    return json.loads(extract_json(text))


def extract_json(text: str) -> str:
    """Cut the JSON document out of a model reply.

    Strips a surrounding markdown fence, then returns the first ``{`` that
    decodes as a complete object. Text with no JSON comes back stripped.
    """
    body = text.strip()
    fenced = _FENCE.match(body)
    if fenced:
        body = fenced.group(1).strip()
    if body.startswith(("{", "[")):
        return body

    decoder = json.JSONDecoder()
    for brace in re.finditer(r"\{", body):
        try:
            _, end = decoder.raw_decode(body, brace.start())
        except json.JSONDecodeError:
            continue
        return body[brace.start():end]
    return body
