"""Loguru sink configuration for CLI and library callers.

The library itself only emits records through ``loguru.logger``. Processes that
embed it (the CLI scripts, a batch worker) call :func:`setup_logging` once at
startup to pick the level, the stderr format and an optional rotating file.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger

from freight_extract.utils.config import LoggingConfig


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Replace loguru's default sink with the configured ones."""
    # Allow developers to opt out while debugging.
    if os.getenv("FREIGHT_DISABLE_LOG_RECONFIG") == "1":
        return

    config = config or LoggingConfig()
    level = config.level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, serialize=config.format == "json")

    if config.file:
        target = Path(config.file)
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(target),
            level=level,
            rotation=f"{config.max_size_mb} MB",
            retention=config.backup_count,
            compression="zip",
            serialize=config.format == "json",
        )
