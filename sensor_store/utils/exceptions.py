"""
Custom exceptions for the sensor storage layer.

Driver errors raised by DuckDB, sqlite3 or the filesystem are not wrapped;
these types cover the conditions the storage layer itself detects.
"""


class StorageError(Exception):
    """Base exception for all storage-related errors."""
    pass


class ConfigurationError(StorageError):
    """Raised when configuration is invalid or missing."""
    pass


class StorageNotInitializedError(StorageError):
    """Raised when an operation is issued before initialize() or after close()."""
    pass


class UnsupportedOperationError(StorageError):
    """Raised when the active backend cannot perform the requested operation."""
    pass


class InvalidFieldError(StorageError):
    """Raised when an update names a column that does not exist or is read-only."""
    pass
