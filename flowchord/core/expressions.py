"""Variable interpolation and condition evaluation.

Templates reference runtime variables with ``{{path}}`` placeholders, for
example ``{{input.msg}}``, ``{{node-1.items[0].price}}`` or ``{{lastOutput}}``.
Conditions on if-else and while nodes are bare boolean expressions evaluated
with simpleeval. Both JavaScript (``&&``, ``===``, ``x.length``) and Python
spellings are accepted since workflows are authored in a browser builder.

Missing variables resolve to None. A bad expression never aborts a run: the
lenient entry points log a warning and fall back to "" or False.
"""

from __future__ import annotations

import ast
import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from simpleeval import EvalWithCompoundTypes, InvalidExpression

from flowchord.core.scope import Scope, normalize_key
from flowchord.core.types import NodeType, Workflow
from flowchord.errors.exceptions import ExpressionError

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(.+?)\s*\}\}", re.DOTALL)
SINGLE_PLACEHOLDER_PATTERN = re.compile(r"^\s*\{\{\s*((?:(?!\{\{|\}\}).)+?)\s*\}\}\s*$", re.DOTALL)
PATH_PATTERN = re.compile(r"^[A-Za-z_][\w-]*(?:\.[\w-]+|\[\d+\])*$")
PATH_SEGMENT_PATTERN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")
ROOT_NAME_PATTERN = re.compile(r"^[A-Za-z_][\w-]*")
STRING_LITERAL_PATTERN = re.compile(r"(\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')")

JS_OPERATORS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"==="), "=="),
    (re.compile(r"!=="), "!="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
]

LITERAL_NAMES: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
    "None": None,
    "True": True,
    "False": False,
}


def _contains(container: Any, item: Any) -> bool:
    if container is None:
        return False
    try:
        return item in container
    except TypeError:
        return False


SAFE_FUNCTIONS: dict[str, Any] = {
    "len": lambda x: len(x) if x is not None else 0,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "lower": lambda s: str(s).lower() if s is not None else "",
    "upper": lambda s: str(s).upper() if s is not None else "",
    "contains": _contains,
    "startswith": lambda s, p: str(s).startswith(p) if s is not None else False,
    "endswith": lambda s, p: str(s).endswith(p) if s is not None else False,
}


class _LenientNames(dict):
    """Name table where unknown variables read as None."""

    def __missing__(self, key: str) -> Any:
        return None


class _ScopeEvaluator(EvalWithCompoundTypes):
    """simpleeval evaluator with lenient member access over JSON-like data."""

    def _eval_attribute(self, node: ast.Attribute) -> Any:
        if node.attr.startswith("_"):
            return super()._eval_attribute(node)
        value = self._eval(node.value)
        if node.attr == "length":
            return len(value) if isinstance(value, (str, list, tuple, dict)) else None
        if node.attr == "includes":
            return lambda item: _contains(value, item)
        if isinstance(value, Mapping):
            return _get_key(value, node.attr)
        if value is None:
            return None
        if isinstance(value, (str, list, tuple)):
            return super()._eval_attribute(node)
        return None

    def _eval_subscript(self, node: ast.Subscript) -> Any:
        try:
            return super()._eval_subscript(node)
        except (KeyError, IndexError, TypeError):
            return None


def _get_key(mapping: Mapping[str, Any], key: str) -> Any:
    if key in mapping:
        return mapping[key]
    alt = normalize_key(key)
    if alt in mapping:
        return mapping[alt]
    for candidate in mapping:
        if isinstance(candidate, str) and normalize_key(candidate) == alt:
            return mapping[candidate]
    return None


def _to_names(scope: Scope | Mapping[str, Any]) -> Mapping[str, Any]:
    return scope.as_names() if isinstance(scope, Scope) else scope


def format_value(value: Any) -> str:
    """Render a resolved value for insertion into a template string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


class ExpressionResolver:
    """Resolves ``{{...}}`` templates and condition expressions against a scope.

    The resolver is stateless and never mutates the scope it reads.

    Example:
        >>> resolver = ExpressionResolver()
        >>> resolver.interpolate("Hi {{input.name}}", {"input": {"name": "Ada"}})
        'Hi Ada'
        >>> resolver.evaluate_condition("input.score > 70 && true", {"input": {"score": 80}})
        True
    """

    def lookup(self, path: str, scope: Scope | Mapping[str, Any]) -> Any:
        """Resolve a dotted path such as ``node_1.items[0].price``.

        Hyphens and underscores in names are interchangeable. Any missing
        segment yields None.
        """
        names = _to_names(scope)
        segments = PATH_SEGMENT_PATTERN.findall(path.strip())
        if not segments:
            return None

        first, _ = segments[0]
        if first in LITERAL_NAMES and first not in names:
            return LITERAL_NAMES[first]
        value: Any = _get_key(names, first)

        for key, index in segments[1:]:
            if value is None:
                return None
            if index:
                value = _index(value, int(index))
            elif key == "length" and isinstance(value, (str, list, tuple)):
                value = len(value)
            elif isinstance(value, Mapping):
                value = _get_key(value, key)
            elif isinstance(value, (list, tuple)) and key.isdigit():
                value = _index(value, int(key))
            else:
                return None
        return value

    def evaluate(self, expression: str, scope: Scope | Mapping[str, Any]) -> Any:
        """Evaluate a bare expression and return its value.

        Raises:
            ExpressionError: If the expression is malformed or cannot be evaluated.
        """
        expression = self._unwrap(expression)
        if not expression:
            return None

        names = _to_names(scope)
        if PATH_PATTERN.match(expression):
            value = self.lookup(expression, names)
            if value is not None or "-" not in expression:
                return value

        table = _LenientNames(LITERAL_NAMES)
        for key, value in names.items():
            table[key] = value
            table[normalize_key(key)] = value

        source = self._normalize(expression, names)
        evaluator = _ScopeEvaluator(functions=SAFE_FUNCTIONS, names=table)
        try:
            return evaluator.eval(source)
        except SyntaxError as e:
            raise ExpressionError(expression, f"syntax error: {e.msg}") from e
        except InvalidExpression as e:
            raise ExpressionError(expression, str(e)) from e
        except (
            TypeError,
            ValueError,
            AttributeError,
            LookupError,
            ArithmeticError,
            RecursionError,
            MemoryError,
        ) as e:
            raise ExpressionError(expression, str(e) or type(e).__name__) from e

    def evaluate_condition(self, expression: str, scope: Scope | Mapping[str, Any]) -> bool:
        """Evaluate a condition to a boolean, treating errors as False."""
        if not expression or not expression.strip():
            return False
        try:
            return bool(self.evaluate(expression, scope))
        except ExpressionError as e:
            logger.warning("Condition evaluated as false: %s", e)
            return False

    def interpolate(self, template: Any, scope: Scope | Mapping[str, Any]) -> str:
        """Substitute every ``{{expr}}`` in `template` and return a string."""
        if template is None:
            return ""
        if not isinstance(template, str):
            return format_value(template)

        names = _to_names(scope)

        def replace(match: re.Match[str]) -> str:
            return format_value(self._resolve_placeholder(match.group(1), names))

        return PLACEHOLDER_PATTERN.sub(replace, template)

    def interpolate_value(self, value: Any, scope: Scope | Mapping[str, Any]) -> Any:
        """Recursively interpolate strings inside dicts and lists.

        A string consisting of exactly one placeholder keeps the native type
        of the resolved value, so ``"{{input.count}}"`` yields an int.
        """
        names = _to_names(scope)
        if isinstance(value, str):
            single = SINGLE_PLACEHOLDER_PATTERN.match(value)
            if single:
                return self._resolve_placeholder(single.group(1), names)
            return self.interpolate(value, names)
        if isinstance(value, dict):
            return {k: self.interpolate_value(v, names) for k, v in value.items()}
        if isinstance(value, list):
            return [self.interpolate_value(v, names) for v in value]
        return value

    def extract_references(self, template: str) -> list[str]:
        """List placeholder expressions in order of appearance, without duplicates."""
        if not isinstance(template, str):
            return []
        seen: list[str] = []
        for match in PLACEHOLDER_PATTERN.finditer(template):
            ref = match.group(1).strip()
            if ref not in seen:
                seen.append(ref)
        return seen

    def validate_references(self, template: str, available: list[str]) -> list[str]:
        """Return referenced root names that are not in `available`."""
        known = {normalize_key(name) for name in available} | set(LITERAL_NAMES)
        unknown: list[str] = []
        for ref in self.extract_references(template):
            root = ROOT_NAME_PATTERN.match(ref)
            if root is None:
                continue
            name = root.group(0)
            if normalize_key(name) not in known and name not in unknown:
                unknown.append(name)
        return unknown

    def available_variables(self, workflow: Workflow, node_id: str) -> list[str]:
        """Variables a node can reference: built-ins plus every upstream node."""
        variables = ["input", "lastOutput", "state"]
        ancestors: list[str] = []
        queue = [node_id]
        visited = {node_id}
        while queue:
            current = queue.pop(0)
            for edge in workflow.incoming(current):
                if edge.source not in visited:
                    visited.add(edge.source)
                    ancestors.append(edge.source)
                    queue.append(edge.source)

        in_loop = False
        for ancestor_id in ancestors:
            node = workflow.get_node(ancestor_id)
            if node is None or node.type == NodeType.NOTE:
                continue
            if node.type == NodeType.WHILE:
                in_loop = True
            variables.append(ancestor_id)
            if node.name:
                variables.append(normalize_key(node.name))
        if in_loop:
            variables.append("iteration")
        return variables

    # Internals

    def _resolve_placeholder(self, expression: str, names: Mapping[str, Any]) -> Any:
        try:
            return self.evaluate(expression, names)
        except ExpressionError as e:
            logger.warning("Interpolation resolved to empty: %s", e)
            return None

    @staticmethod
    def _unwrap(expression: str) -> str:
        """Turn ``{{a}} > 3`` into ``(a) > 3`` so placeholders keep their types."""
        expression = expression.strip()
        single = SINGLE_PLACEHOLDER_PATTERN.match(expression)
        if single:
            return single.group(1).strip()
        return PLACEHOLDER_PATTERN.sub(lambda m: f"({m.group(1).strip()})", expression)

    @staticmethod
    def _normalize(expression: str, names: Mapping[str, Any]) -> str:
        """Rewrite JS operators and hyphenated names outside string literals."""
        hyphenated = sorted((k for k in names if "-" in k), key=len, reverse=True)
        parts = STRING_LITERAL_PATTERN.split(expression)
        for i in range(0, len(parts), 2):
            segment = parts[i]
            for pattern, replacement in JS_OPERATORS:
                segment = pattern.sub(replacement, segment)
            for key in hyphenated:
                segment = re.sub(
                    rf"(?<![\w.-]){re.escape(key)}(?![\w-])",
                    normalize_key(key),
                    segment,
                )
            parts[i] = segment
        return "".join(parts).strip()


def _index(value: Any, index: int) -> Any:
    if isinstance(value, (list, tuple, str)) and -len(value) <= index < len(value):
        return value[index]
    if isinstance(value, Mapping):
        return value.get(str(index))
    return None
