"""Process-wide console logger shared by the executor and CLI."""

from __future__ import annotations

from typing import Any

from flowchord.logging.logger import FlowChordLogger, LogLevel

_console_logger: FlowChordLogger | None = None


def get_logger() -> FlowChordLogger:
    """Return the shared console logger, building an INFO one on first use."""
    global _console_logger
    if _console_logger is None:
        _console_logger = FlowChordLogger()
    return _console_logger


def configure_logging(level: LogLevel | str = LogLevel.INFO, **options: Any) -> FlowChordLogger:
    """Replace the shared console logger.

    ``level`` may be a LogLevel or its name in any case; an unknown name
    raises ValueError. Remaining options go to FlowChordLogger
    (``enabled``, ``show_timestamps``, ``show_level``, ``console``).

    Example:
        >>> configure_logging(level="debug", show_timestamps=False)
    """
    global _console_logger
    if not isinstance(level, LogLevel):
        level = LogLevel(level.lower())
    _console_logger = FlowChordLogger(level=level, **options)
    return _console_logger


def disable_logging() -> None:
    get_logger().enabled = False


def enable_logging() -> None:
    get_logger().enabled = True
