"""Configuration management for Gmail Reader.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the GMAIL_READER_ prefix (e.g., GMAIL_READER_RENDER_TIMEOUT).
    """

    model_config = SettingsConfigDict(
        env_prefix="GMAIL_READER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API credentials file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path to Gmail API token file",
    )
    gmail_scope: str = Field(
        default="https://www.googleapis.com/auth/gmail.modify",
        description=(
            "OAuth scope used for Gmail access. Label changes and draft updates "
            "need gmail.modify; use gmail.readonly for read-only browsing."
        ),
    )
    gmail_user_id: str = Field(
        default="me",
        description="Gmail user ID passed to every API call",
    )

    # HTML rendering
    html_renderer_command: list[str] = Field(
        default_factory=lambda: ["lynx", "-dump", "-stdin"],
        description="Command that reads HTML on stdin and writes plain text on stdout",
    )
    render_timeout: float = Field(
        default=10.0,
        description="Timeout for a single HTML rendering in seconds",
    )

    # Crypto
    gpg_binary: str = Field(
        default="gpg",
        description="GnuPG binary used for OpenPGP verification and decryption",
    )
    openssl_binary: str = Field(
        default="openssl",
        description="OpenSSL binary used for S/MIME verification",
    )
    crypto_timeout: float = Field(
        default=30.0,
        description="Timeout for a single crypto engine invocation in seconds",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    max_retries: int = Field(
        default=3,
        description="Maximum number of retries for transient Gmail API failures",
    )
    retry_delay: float = Field(
        default=1.0,
        description="Initial delay between retries in seconds",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
