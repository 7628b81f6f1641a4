"""
Logging configuration for the sensor storage layer.

Backend selection is logged at INFO, probe failures at WARNING and forced
fallbacks at ERROR; everything goes through the standard ``logging`` tree
under the ``sensor_store`` namespace.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FORMAT_NO_TIME = '%(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    include_timestamp: bool = True
) -> None:
    """
    Set up root logging for the CLI and long-running callers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging output
        include_timestamp: Whether to include timestamps in log messages
    """
    if include_timestamp:
        formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    else:
        formatter = logging.Formatter(LOG_FORMAT_NO_TIME)

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, level.upper()))

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for ``__name__``)."""
    return logging.getLogger(name)
