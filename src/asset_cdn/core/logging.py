"""Loguru logging configuration for the publish pipeline.

Every record carries a ``task`` field so pipeline logs can be told apart
from the host application's.  JSON output is opt-in per record through
``logger.bind(json_output=True)``, and a rotating file sink is added when
a ``log_dir`` is provided.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

TASK_NAME = "asset-cdn"

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[task]} | {name}:{function}:{line} | {message}"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure Loguru sinks for CLI runs.

    Args:
        log_level: Minimum log level to emit (case-insensitive).
        log_dir: Optional directory for log files.  When set, a rotating
            file sink is added (rotated every 24 hours, retained 7 days).
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(extra={"task": TASK_NAME})
    logger.add(sys.stderr, level=level, format=_LOG_FORMAT, serialize=False)
    logger.add(
        sys.stderr,
        level=level,
        serialize=True,
        filter=lambda record: record["extra"].get("json_output", False),
    )

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / f"{TASK_NAME}.log",
            level=level,
            format=_LOG_FORMAT,
            rotation="24h",
            retention="7 days",
        )


def get_pipeline_logger(**context: object) -> Logger:
    """Return a logger bound with the pipeline task name and extra context.

    Components receive this logger through their constructors instead of
    importing the global one.
    """
    return logger.bind(task=TASK_NAME, **context)
