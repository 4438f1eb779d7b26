"""
================================================================================
Autotest Tools Common Utilities
================================================================================

Logging setup shared by the compose acceptance harness and its tools.
Settings are owned by the harness ConfigLoader; callers pass the values in.

Exports:
    - init_logger: Function to initialize loguru logger with standard settings
    - DEFAULT_LOG_FORMAT: Format used when the caller does not provide one

Usage:
    from autotest_tools.common import init_logger

    init_logger(level="DEBUG", log_file="reports/logs/harness.log")

================================================================================
"""

import os
import sys
from typing import Optional

from loguru import logger

# ============================================================
# Logging Setup
# ============================================================

_logger_initialized = False

DEFAULT_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def init_logger(
    level: str = "INFO",
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> None:
    """
    Initializes the loguru logger with standard settings.

    Only the first call per process takes effect.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format_string: Log format string. Uses default if not provided.
        log_file: Optional file path to write logs to.
        rotation: Rotation policy for the file sink.
        retention: Retention policy for the file sink.

    Example:
        init_logger()  # Use defaults
        init_logger(level="DEBUG", log_file="reports/logs/harness.log")
    """
    global _logger_initialized

    if _logger_initialized:
        return

    # Remove default handler
    logger.remove()

    level = str(level or "INFO").upper()
    format_string = format_string or DEFAULT_LOG_FORMAT

    logger.add(
        sys.stderr,
        format=format_string,
        level=level,
        colorize=True,
    )

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        # enqueue keeps the sink safe when pytest-xdist workers share the file
        logger.add(
            log_file,
            format=format_string,
            level=level,
            rotation=rotation,
            retention=retention,
            enqueue=True,
        )

    _logger_initialized = True
    logger.debug("Logger initialized successfully")


# Export public API
__all__ = [
    "DEFAULT_LOG_FORMAT",
    "init_logger",
]
