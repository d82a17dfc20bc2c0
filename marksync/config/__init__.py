"""
Configuration module for marksync.
"""

from .environment import EnvironmentLoader
from .settings import (
    DEFAULT_EXCLUDED_FILES,
    DEFAULT_GITHUB_API_URL,
    ApiConfig,
    LogLevel,
    StorageConfig,
    SyncSettings,
)
from .validation import ConfigValidator

__all__ = [
    "EnvironmentLoader",
    "ConfigValidator",
    "DEFAULT_EXCLUDED_FILES",
    "DEFAULT_GITHUB_API_URL",
    "ApiConfig",
    "LogLevel",
    "StorageConfig",
    "SyncSettings",
]
