"""Unit tests for configuration module."""

from pathlib import Path

import pytest

from gmail_reader.config import Settings, get_settings


class TestSettings:
    """Test suite for Settings class."""

    def test_default_settings(self) -> None:
        """Test that default settings are properly initialized."""
        settings = Settings()

        assert settings.gmail_credentials_path == Path("credentials.json")
        assert settings.gmail_user_id == "me"
        assert settings.html_renderer_command == ["lynx", "-dump", "-stdin"]
        assert settings.gpg_binary == "gpg"
        assert settings.log_level == "INFO"
        assert settings.debug is False
        assert settings.max_retries == 3

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading settings from environment variables."""
        monkeypatch.setenv("GMAIL_READER_GPG_BINARY", "/opt/gnupg/bin/gpg2")
        monkeypatch.setenv("GMAIL_READER_RENDER_TIMEOUT", "2.5")
        monkeypatch.setenv("GMAIL_READER_HTML_RENDERER_COMMAND", '["w3m", "-dump", "-T", "text/html"]')
        monkeypatch.setenv("GMAIL_READER_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("GMAIL_READER_DEBUG", "true")

        # Clear the cache to ensure fresh settings
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.gpg_binary == "/opt/gnupg/bin/gpg2"
        assert settings.render_timeout == 2.5
        assert settings.html_renderer_command == ["w3m", "-dump", "-T", "text/html"]
        assert settings.log_level == "DEBUG"
        assert settings.debug is True

        # Clean up
        get_settings.cache_clear()

    def test_get_settings_returns_cached_instance(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

        # Clean up
        get_settings.cache_clear()
