"""stdlib logging setup shared by ``flowchord serve`` and ``flowchord run``."""
from __future__ import annotations

import logging.config
from typing import Any

LINE_FORMATS: dict[str, dict[str, str]] = {
    "text": {
        "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        "datefmt": "%Y-%m-%d %H:%M:%S",
    },
    "json": {
        "format": (
            '{"time":"%(asctime)s","level":"%(levelname)s",'
            '"logger":"%(name)s","message":"%(message)s"}'
        ),
        "datefmt": "%Y-%m-%dT%H:%M:%S",
    },
}

# Chatty dependencies held at WARNING whatever the root level is.
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "mcp")


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Route every logger to one stderr handler.

    stdout stays free for ``flowchord run`` output. Unknown ``fmt`` values
    fall back to text.
    """
    level = level.upper()
    loggers: dict[str, Any] = {name: {"level": "WARNING"} for name in QUIET_LOGGERS}
    loggers["flowchord"] = {"level": level}
    loggers["uvicorn"] = {"level": level}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": LINE_FORMATS,
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": fmt if fmt in LINE_FORMATS else "text",
            },
        },
        "root": {"level": level, "handlers": ["stderr"]},
        "loggers": loggers,
    })
