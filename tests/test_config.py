"""
Tests for runtime configuration.
"""

import logging

import pytest

from clipboard_sync.config import ClipboardConfig
from clipboard_sync.exceptions import ValidationError


class TestDefaults:
    def test_defaults(self):
        config = ClipboardConfig()
        assert config.db_path == ":memory:"
        assert config.session_ttl_hours == 24
        assert config.code_length == 5
        assert config.token_length == 16
        assert config.create_attempts == 5
        assert config.port == 4000
        assert config.max_body_bytes == 64 * 1024
        assert config.json_logs is False

    def test_log_level_value(self):
        assert ClipboardConfig(log_level="debug").log_level_value == logging.DEBUG
        assert ClipboardConfig(log_level="nonsense").log_level_value == logging.INFO


class TestValidation:
    def test_token_must_be_longer_than_code(self):
        with pytest.raises(ValidationError) as exc_info:
            ClipboardConfig(code_length=8, token_length=8)
        assert exc_info.value.field == "token_length"

    def test_create_attempts_positive(self):
        with pytest.raises(ValidationError):
            ClipboardConfig(create_attempts=0)

    def test_negative_ttl(self):
        with pytest.raises(ValidationError):
            ClipboardConfig(session_ttl_hours=-1)


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CLIPBOARD_DB_PATH", "/tmp/clip.db")
        monkeypatch.setenv("CLIPBOARD_PORT", "5050")
        monkeypatch.setenv("CLIPBOARD_SESSION_TTL_HOURS", "48")
        monkeypatch.setenv("CLIPBOARD_JSON_LOGS", "true")
        monkeypatch.setenv("CLIPBOARD_PUBLIC_BASE_URL", "https://clip.example")

        config = ClipboardConfig.from_env()

        assert config.db_path == "/tmp/clip.db"
        assert config.port == 5050
        assert config.session_ttl_hours == 48
        assert config.json_logs is True
        assert config.public_base_url == "https://clip.example"

    def test_empty_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("CLIPBOARD_PORT", "")
        monkeypatch.delenv("CLIPBOARD_PUBLIC_BASE_URL", raising=False)
        config = ClipboardConfig.from_env()
        assert config.port == 4000
        assert config.public_base_url is None

    def test_bad_integer(self, monkeypatch):
        monkeypatch.setenv("CLIPBOARD_CODE_LENGTH", "five")
        with pytest.raises(ValidationError) as exc_info:
            ClipboardConfig.from_env()
        assert exc_info.value.field == "CLIPBOARD_CODE_LENGTH"
