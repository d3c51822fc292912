"""Logging configuration built around structlog JSON logging.

Every component logs through structlog into the stdlib ``tweet_harvester``
logger. uvicorn's own loggers share the same handlers so the ingestion
service writes one ``harvester.log`` and one ``error.log``.
"""

from __future__ import annotations

import logging
import logging.config
import os
from collections import deque
from pathlib import Path
from typing import Any

import structlog

APP_LOGGER = "tweet_harvester"
HARVESTER_LOG = "harvester.log"
ERROR_LOG = "error.log"

# Library loggers routed into the application handlers, with their floor level
_LIBRARY_LEVELS = {
    "uvicorn.error": "INFO",
    "uvicorn.access": "WARNING",
    "httpx": "WARNING",
    "apscheduler": "WARNING",
}

_LOGGING_INITIALISED = False


def default_log_dir() -> Path:
    env_root = os.environ.get("TWEET_HARVESTER_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def build_logging_config(log_dir: Path, verbose: bool = False) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for the console and the two log files."""

    level = "DEBUG" if verbose else "INFO"
    handlers = ["console", "harvester_file", "error_file"]
    loggers: dict[str, Any] = {
        APP_LOGGER: {"handlers": handlers, "level": level, "propagate": False},
    }
    for name, floor in _LIBRARY_LEVELS.items():
        loggers[name] = {"handlers": handlers, "level": floor, "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json",
            },
            "harvester_file": {
                "class": "logging.FileHandler",
                "level": "INFO",
                "filename": str(log_dir / HARVESTER_LOG),
                "encoding": "utf-8",
                "formatter": "json",
            },
            "error_file": {
                "class": "logging.FileHandler",
                "level": "ERROR",
                "filename": str(log_dir / ERROR_LOG),
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "loggers": loggers,
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers once and return the application logger.

    Later calls only raise the application level to DEBUG when ``verbose``.
    """

    global _LOGGING_INITIALISED
    if not _LOGGING_INITIALISED:
        log_dir = default_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        logging.config.dictConfig(build_logging_config(log_dir, verbose))
        # JSON rendering happens in the stdlib formatter
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    elif verbose:
        logging.getLogger(APP_LOGGER).setLevel(logging.DEBUG)
    return structlog.get_logger(APP_LOGGER)


def component_logger(component: str) -> structlog.BoundLogger:
    """Return the application logger bound to a component name."""

    return configure_logging().bind(component=component)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if line_count <= 0 or not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return list(deque(stream, maxlen=line_count))


__all__ = [
    "build_logging_config",
    "component_logger",
    "configure_logging",
    "default_log_dir",
    "tail_log",
]
