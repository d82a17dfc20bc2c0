"""
Configuration settings for marksync.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_EXCLUDED_FILES = [
    "package.json",
    "package-lock.json",
    "composer.json",
    "tsconfig.json",
    "jsconfig.json",
    "manifest.json",
    "renovate.json",
    ".eslintrc.json",
    ".prettierrc.json",
    "settings.json",
    "launch.json",
]


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class ApiConfig:
    """HTTP control API settings."""
    host: str = "127.0.0.1"
    port: int = 5000
    enabled: bool = True


@dataclass
class StorageConfig:
    backend: str = "memory"  # "memory" or "sqlite"
    db_path: str = "data/marksync.db"


@dataclass
class SyncSettings:
    """Everything the sync engine needs to run."""
    github_api_url: str = DEFAULT_GITHUB_API_URL
    github_token: Optional[str] = None  # seeds the credential store on startup
    request_timeout: float = 30.0
    debounce_seconds: float = 2.0
    event_queue_size: int = 1000
    token_encryption_key: Optional[str] = None
    include_tags: bool = True
    include_notes: bool = True
    excluded_files: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_FILES))
    storage: StorageConfig = field(default_factory=StorageConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    log_level: LogLevel = LogLevel.INFO
