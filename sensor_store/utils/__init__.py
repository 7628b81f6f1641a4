"""Utility modules for the sensor storage layer."""

from .logging import setup_logging, get_logger
from .exceptions import (
    StorageError,
    ConfigurationError,
    StorageNotInitializedError,
    UnsupportedOperationError,
    InvalidFieldError,
)
from .sanitize import sanitize_value, sanitize_record, to_utc_iso, to_naive_utc

__all__ = [
    "setup_logging",
    "get_logger",
    "StorageError",
    "ConfigurationError",
    "StorageNotInitializedError",
    "UnsupportedOperationError",
    "InvalidFieldError",
    "sanitize_value",
    "sanitize_record",
    "to_utc_iso",
    "to_naive_utc",
]
