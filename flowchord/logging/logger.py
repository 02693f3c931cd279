"""Rich console output for run and node lifecycle."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from rich.console import Console


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return list(LogLevel).index(self)


_LEVEL_STYLE = {
    LogLevel.DEBUG: "dim",
    LogLevel.INFO: "blue",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "red bold",
}

_STATUS_STYLE = {
    "completed": "green",
    "failed": "red",
}


class FlowChordLogger:
    """Human-readable trace of a workflow run on stderr.

    This sits next to stdlib ``logging`` rather than replacing it: module
    loggers carry diagnostics, this one draws the run as an operator sees
    it (workflow banner, one line per node, LLM and tool detail at DEBUG).

    Example:
        >>> console = FlowChordLogger(level=LogLevel.DEBUG)
        >>> console.workflow_start("wf-1", "exec-1", node_count=4)
        >>> console.node_start("agent-1", "agent")
    """

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        console: Console | None = None,
        show_timestamps: bool = True,
        show_level: bool = True,
        enabled: bool = True,
    ) -> None:
        self.level = level
        self.enabled = enabled
        self._console = console or Console(stderr=True)
        self._show_timestamps = show_timestamps
        self._show_level = show_level

    def _wants(self, level: LogLevel) -> bool:
        return self.enabled and level.rank >= self.level.rank

    def _prefix(self, level: LogLevel) -> str:
        parts: list[str] = []
        if self._show_timestamps:
            parts.append(f"[dim]{datetime.now():%H:%M:%S}[/]")
        if self._show_level:
            parts.append(f"[{_LEVEL_STYLE[level]}]{level.value.upper():7}[/]")
        return " ".join(parts)

    def _emit(self, level: LogLevel, body: str) -> None:
        if not self._wants(level):
            return
        prefix = self._prefix(level)
        self._console.print(f"{prefix} {body}" if prefix else body)

    def _message(self, level: LogLevel, message: str, context: dict[str, Any]) -> None:
        fields = "".join(f" [dim]{key}=[/]{value}" for key, value in context.items())
        self._emit(level, message + fields)

    def debug(self, message: str, **context: Any) -> None:
        self._message(LogLevel.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._message(LogLevel.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._message(LogLevel.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._message(LogLevel.ERROR, message, context)

    # Run lifecycle, INFO

    def workflow_start(self, workflow_id: str, execution_id: str, node_count: int) -> None:
        self._emit(
            LogLevel.INFO,
            f"[bold cyan]◆ Workflow[/] {workflow_id} starting "
            f"[dim]({node_count} nodes, execution {execution_id})[/]",
        )

    def workflow_suspended(self, execution_id: str, node_id: str, reason: str) -> None:
        self._emit(
            LogLevel.INFO,
            f"[bold yellow]⏸ Workflow[/] waiting at {node_id}: {reason} "
            f"[dim]execution {execution_id}[/]",
        )

    def workflow_end(self, execution_id: str, status: str, duration_ms: int) -> None:
        """Final line of a run; ``status`` is completed, failed or cancelled."""
        style = _STATUS_STYLE.get(status, "yellow")
        self._emit(
            LogLevel.INFO,
            f"[bold {style}]◆ Workflow[/] {status} ({duration_ms}ms) "
            f"[dim]execution {execution_id}[/]",
        )

    # Per-node detail, DEBUG except failures

    def node_start(self, node_id: str, node_type: str, iteration: int | None = None) -> None:
        suffix = "" if iteration is None else f" [dim](iteration {iteration})[/]"
        self._emit(LogLevel.DEBUG, f"  [bold blue]▶ {node_id}[/] [dim]{node_type}[/]{suffix}")

    def node_end(self, node_id: str, duration_ms: int, branch: str | None = None) -> None:
        suffix = f" → {branch}" if branch else ""
        self._emit(LogLevel.DEBUG, f"  [bold green]✓ {node_id}[/] ({duration_ms}ms){suffix}")

    def node_error(self, node_id: str, error: str) -> None:
        self._emit(LogLevel.ERROR, f"  [bold red]✗ {node_id}[/] failed: {error}")

    def llm_call(self, model: str, tokens: int, duration_ms: int) -> None:
        self._emit(LogLevel.DEBUG, f"    [dim]LLM:[/] {model} | {tokens:,} tokens | {duration_ms}ms")

    def tool_call(self, tool_name: str, success: bool, duration_ms: int | None = None) -> None:
        mark = "[green]✓[/]" if success else "[red]✗[/]"
        took = f" ({duration_ms}ms)" if duration_ms else ""
        self._emit(LogLevel.DEBUG, f"    [dim]Tool:[/] {tool_name} {mark}{took}")
