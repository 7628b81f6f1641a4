"""Configuration models for the sensor storage layer."""

from .models import AppConfig, AppInfo, LoggingSettings, StorageSettings

__all__ = ["AppConfig", "AppInfo", "LoggingSettings", "StorageSettings"]
