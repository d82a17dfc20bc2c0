"""
Configuration validation for marksync.
"""

from typing import List
from urllib.parse import urlparse

from .settings import SyncSettings


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: SyncSettings) -> List[str]:
        """Validate the whole configuration; returns a list of problems."""
        errors = []

        errors.extend(ConfigValidator._validate_api_url(config.github_api_url))
        errors.extend(ConfigValidator._validate_storage(config))
        errors.extend(ConfigValidator._validate_numeric_ranges(config))

        if not (1 <= config.api.port <= 65535):
            errors.append(f"API port {config.api.port} is not in valid range (1-65535)")

        return errors

    @staticmethod
    def _validate_api_url(url: str) -> List[str]:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return [f"Invalid GitHub API URL: {url}"]
        return []

    @staticmethod
    def _validate_storage(config: SyncSettings) -> List[str]:
        errors = []
        if config.storage.backend not in ("memory", "sqlite"):
            errors.append(
                f"Invalid storage backend: {config.storage.backend}. Must be 'memory' or 'sqlite'"
            )
        if config.storage.backend == "sqlite" and not config.storage.db_path:
            errors.append("MARKSYNC_DB_PATH is required for the sqlite storage backend")
        return errors

    @staticmethod
    def _validate_numeric_ranges(config: SyncSettings) -> List[str]:
        errors = []
        if config.request_timeout <= 0:
            errors.append("Request timeout must be positive")
        if config.debounce_seconds < 0:
            errors.append("Debounce interval cannot be negative")
        if config.event_queue_size <= 0:
            errors.append("Event queue size must be positive")
        return errors
