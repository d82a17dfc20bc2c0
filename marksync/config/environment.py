"""
Environment variable handling for marksync configuration.
"""

import os
from typing import List

from dotenv import load_dotenv

from .settings import (
    DEFAULT_EXCLUDED_FILES,
    DEFAULT_GITHUB_API_URL,
    ApiConfig,
    LogLevel,
    StorageConfig,
    SyncSettings,
)


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_config(env_file: str = ".env") -> SyncSettings:
        """Load configuration from environment variables (and a .env file if present)."""
        load_dotenv(env_file, override=False)

        storage = StorageConfig(
            backend=os.getenv("MARKSYNC_STORAGE_BACKEND", "memory").lower(),
            db_path=os.getenv("MARKSYNC_DB_PATH", "data/marksync.db"),
        )

        api = ApiConfig(
            host=os.getenv("MARKSYNC_API_HOST", "127.0.0.1"),
            port=int(os.getenv("MARKSYNC_API_PORT", "5000")),
            enabled=EnvironmentLoader._parse_bool(os.getenv("MARKSYNC_API_ENABLED", "true")),
        )

        log_level = LogLevel.INFO
        try:
            log_level = LogLevel(os.getenv("LOG_LEVEL", "INFO").upper())
        except ValueError:
            pass  # Use default

        excluded = EnvironmentLoader._parse_list(os.getenv("MARKSYNC_EXCLUDED_FILES", ""))

        return SyncSettings(
            github_api_url=os.getenv("GITHUB_API_URL", DEFAULT_GITHUB_API_URL).rstrip("/"),
            github_token=os.getenv("GITHUB_TOKEN") or None,
            request_timeout=float(os.getenv("MARKSYNC_REQUEST_TIMEOUT", "30")),
            debounce_seconds=float(os.getenv("MARKSYNC_DEBOUNCE_SECONDS", "2.0")),
            event_queue_size=int(os.getenv("MARKSYNC_EVENT_QUEUE_SIZE", "1000")),
            token_encryption_key=os.getenv("MARKSYNC_TOKEN_ENCRYPTION_KEY") or None,
            include_tags=EnvironmentLoader._parse_bool(os.getenv("MARKSYNC_INCLUDE_TAGS", "true")),
            include_notes=EnvironmentLoader._parse_bool(os.getenv("MARKSYNC_INCLUDE_NOTES", "true")),
            excluded_files=excluded or list(DEFAULT_EXCLUDED_FILES),
            storage=storage,
            api=api,
            log_level=log_level,
        )

    @staticmethod
    def _parse_bool(value: str) -> bool:
        return value.strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_list(value: str, delimiter: str = ",") -> List[str]:
        """Parse a comma-separated string into a list."""
        if not value:
            return []
        return [item.strip() for item in value.split(delimiter) if item.strip()]
