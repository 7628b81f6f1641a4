"""Services that consume the storage layer."""

from .data_service import DataService

__all__ = ["DataService"]
