"""
Tests for environment loading and configuration validation.
"""

import pytest

from marksync.config import (
    DEFAULT_EXCLUDED_FILES,
    ConfigValidator,
    EnvironmentLoader,
    LogLevel,
    SyncSettings,
)

ENV_KEYS = [
    "GITHUB_API_URL",
    "GITHUB_TOKEN",
    "LOG_LEVEL",
    "MARKSYNC_STORAGE_BACKEND",
    "MARKSYNC_DB_PATH",
    "MARKSYNC_API_HOST",
    "MARKSYNC_API_PORT",
    "MARKSYNC_API_ENABLED",
    "MARKSYNC_REQUEST_TIMEOUT",
    "MARKSYNC_DEBOUNCE_SECONDS",
    "MARKSYNC_EVENT_QUEUE_SIZE",
    "MARKSYNC_TOKEN_ENCRYPTION_KEY",
    "MARKSYNC_INCLUDE_TAGS",
    "MARKSYNC_INCLUDE_NOTES",
    "MARKSYNC_EXCLUDED_FILES",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Unset every variable the loader reads; values loaded from .env are undone too."""
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


class TestEnvironmentLoader:
    def test_defaults(self, clean_env, tmp_path):
        config = EnvironmentLoader.load_config(str(tmp_path / "missing.env"))

        assert config.github_api_url == "https://api.github.com"
        assert config.github_token is None
        assert config.debounce_seconds == 2.0
        assert config.storage.backend == "memory"
        assert config.api.port == 5000
        assert config.excluded_files == DEFAULT_EXCLUDED_FILES
        assert config.log_level == LogLevel.INFO

    def test_environment_overrides(self, clean_env, tmp_path):
        clean_env.setenv("GITHUB_API_URL", "https://ghe.example.com/api/v3/")
        clean_env.setenv("GITHUB_TOKEN", "ghp_test")
        clean_env.setenv("MARKSYNC_STORAGE_BACKEND", "SQLite")
        clean_env.setenv("MARKSYNC_API_ENABLED", "no")
        clean_env.setenv("MARKSYNC_INCLUDE_NOTES", "0")
        clean_env.setenv("MARKSYNC_EXCLUDED_FILES", "package.json, keep.json ,")
        clean_env.setenv("LOG_LEVEL", "debug")

        config = EnvironmentLoader.load_config(str(tmp_path / "missing.env"))

        assert config.github_api_url == "https://ghe.example.com/api/v3"
        assert config.github_token == "ghp_test"
        assert config.storage.backend == "sqlite"
        assert not config.api.enabled
        assert config.include_tags and not config.include_notes
        assert config.excluded_files == ["package.json", "keep.json"]
        assert config.log_level == LogLevel.DEBUG

    def test_unknown_log_level_falls_back(self, clean_env, tmp_path):
        clean_env.setenv("LOG_LEVEL", "chatty")
        assert EnvironmentLoader.load_config(str(tmp_path / "missing.env")).log_level == LogLevel.INFO

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("MARKSYNC_DEBOUNCE_SECONDS=0.5\nMARKSYNC_API_PORT=8080\n")

        config = EnvironmentLoader.load_config(str(env_file))

        assert config.debounce_seconds == 0.5
        assert config.api.port == 8080

    def test_process_environment_wins_over_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("MARKSYNC_API_PORT=8080\n")
        clean_env.setenv("MARKSYNC_API_PORT", "9090")

        assert EnvironmentLoader.load_config(str(env_file)).api.port == 9090


class TestConfigValidator:
    def test_default_config_is_valid(self):
        assert ConfigValidator.validate_config(SyncSettings()) == []

    def test_reports_every_problem(self):
        config = SyncSettings(github_api_url="ftp://nowhere", request_timeout=0, debounce_seconds=-1)
        config.storage.backend = "redis"
        config.api.port = 70000

        errors = ConfigValidator.validate_config(config)

        assert len(errors) == 5
        assert any("GitHub API URL" in e for e in errors)
        assert any("storage backend" in e for e in errors)
        assert any("port" in e for e in errors)

    def test_sqlite_needs_path(self):
        config = SyncSettings()
        config.storage.backend = "sqlite"
        config.storage.db_path = ""
        assert ConfigValidator.validate_config(config) == [
            "MARKSYNC_DB_PATH is required for the sqlite storage backend"
        ]
