"""Logging module for FlowChord.

Provides Rich console output for workflow and node lifecycle.
"""

from flowchord.logging.config import (
    configure_logging,
    disable_logging,
    enable_logging,
    get_logger,
)
from flowchord.logging.logger import FlowChordLogger, LogLevel

__all__ = [
    "LogLevel",
    "FlowChordLogger",
    "get_logger",
    "configure_logging",
    "disable_logging",
    "enable_logging",
]
