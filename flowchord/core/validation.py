"""Structural validation of workflow graphs before execution."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from flowchord.core.config import EngineConfig
from flowchord.core.types import Edge, Node, NodeType, Workflow
from flowchord.errors.exceptions import WorkflowValidationError

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """Errors block execution; warnings describe edges the walker will ignore."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    pruned_edges: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _check_node_config(node: Node, config: EngineConfig, errors: list[str]) -> None:
    data = node.data
    if node.type == NodeType.HTTP and not str(data.get("httpUrl") or data.get("url") or "").strip():
        errors.append(f"HTTP node '{node.id}' has no URL")
    elif node.type == NodeType.IF_ELSE and not str(data.get("condition") or "").strip():
        errors.append(f"If-else node '{node.id}' has no condition")
    elif node.type == NodeType.WHILE:
        if not str(data.get("whileCondition") or data.get("condition") or "").strip():
            errors.append(f"While node '{node.id}' has no whileCondition")
        max_iterations = data.get("maxIterations")
        if max_iterations is not None:
            try:
                if int(max_iterations) < 1:
                    errors.append(f"While node '{node.id}' maxIterations must be >= 1")
            except (TypeError, ValueError):
                errors.append(f"While node '{node.id}' maxIterations is not a number")
    elif node.type == NodeType.MCP and not (data.get("toolName") or data.get("mcpTool")):
        errors.append(f"MCP node '{node.id}' has no toolName")
    elif node.type == NodeType.TRANSFORM:
        script = data.get("transformScript") or ""
        if len(script) > config.transform_max_script_chars:
            errors.append(
                f"Transform node '{node.id}' script exceeds "
                f"{config.transform_max_script_chars} characters"
            )
    elif node.type == NodeType.SET_STATE and not str(data.get("stateKey") or "").strip():
        errors.append(f"Set-state node '{node.id}' has no stateKey")
    elif node.type == NodeType.EXTRACT:
        schema = data.get("jsonSchema")
        if not schema:
            errors.append(f"Extract node '{node.id}' has no jsonSchema")
        elif isinstance(schema, str):
            try:
                json.loads(schema)
            except json.JSONDecodeError as e:
                errors.append(f"Extract node '{node.id}' jsonSchema is not valid JSON: {e.msg}")


def validate_workflow(workflow: Workflow, config: EngineConfig | None = None) -> ValidationReport:
    """Check a workflow and report problems without modifying it."""
    config = config or EngineConfig()
    report = ValidationReport()

    ids = [n.id for n in workflow.nodes]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    for dup in duplicates:
        report.errors.append(f"Duplicate node id '{dup}'")

    starts = workflow.start_nodes
    if not starts:
        report.errors.append("Workflow has no start node")
    elif len(starts) > 1:
        report.errors.append(
            f"Workflow has {len(starts)} start nodes; exactly one is required"
        )

    known = set(ids)
    nodes = {n.id: n for n in workflow.nodes}
    for edge in workflow.edges:
        if edge.source not in known or edge.target not in known:
            report.pruned_edges.append(edge.id)
            report.warnings.append(
                f"Edge '{edge.id}' references a missing node and is ignored"
            )
            continue
        source = nodes[edge.source]
        target = nodes[edge.target]
        if NodeType.NOTE in (source.type, target.type):
            report.pruned_edges.append(edge.id)
            continue
        if source.type.is_branching and edge.branch_for(source.type) is None:
            vocabulary = "/".join(source.type.branches)
            report.warnings.append(
                f"Edge '{edge.id}' from {source.type.value} node '{source.id}' "
                f"has no {vocabulary} label and will not be followed"
            )

    for node in workflow.nodes:
        _check_node_config(node, config, report.errors)

    return report


def prepare_workflow(workflow: Workflow, config: EngineConfig | None = None) -> Workflow:
    """Validate and return a copy without dangling or note edges.

    Raises:
        WorkflowValidationError: If the workflow cannot be executed.
    """
    report = validate_workflow(workflow, config)
    for warning in report.warnings:
        logger.warning("Workflow %s: %s", workflow.id, warning)
    if not report.is_valid:
        raise WorkflowValidationError(
            f"Workflow '{workflow.id}' is invalid: {'; '.join(report.errors)}",
            errors=report.errors,
        )

    pruned = set(report.pruned_edges)
    edges: list[Edge] = [e for e in workflow.edges if e.id not in pruned]
    return workflow.model_copy(update={"edges": edges})
