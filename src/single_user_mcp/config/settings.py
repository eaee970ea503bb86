"""Configuration settings for the single-user MCP server using Pydantic Settings.

Values are read once at startup from environment variables (and an optional
``.env`` file) and handed to the storage and credential layers as plain
values.
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central configuration management with Pydantic validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
        validate_default=True,
    )

    # ========================================
    # Debug Settings
    # ========================================
    debug: bool = Field(
        default=False,
        alias="MCP_DEBUG",
        description="Enable debug mode with verbose logging",
    )

    # ========================================
    # Server Settings
    # ========================================
    host: str = Field(
        default="0.0.0.0",
        description="Server host address",
    )

    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Server port number",
    )

    server_url: str | None = Field(
        default=None,
        description="Public base URL of the server (defaults to http://localhost:<port>)",
    )

    transport: str = Field(
        default="http",
        description="Transport mode (http, sse or stdio)",
    )

    # ========================================
    # Storage Settings
    # ========================================
    data_dir: Path = Field(
        default=Path("./data"),
        description="Directory holding the OAuth snapshot and the API key file",
    )

    api_key_file: Path | None = Field(
        default=None,
        description="Path of the single-user API key file (defaults to <data_dir>/api_key.txt)",
    )

    cleanup_interval: int = Field(
        default=300,
        ge=0,
        description="Seconds between expired-entry sweeps (0 disables the sweep task)",
    )

    # ========================================
    # OAuth Settings
    # ========================================
    allow_dynamic_client_registration: bool = Field(
        default=True,
        description="Enable Dynamic Client Registration (RFC 7591)",
    )

    supported_scopes: str = Field(
        default="read,write",
        description="Comma-separated list of valid OAuth scopes",
    )

    access_token_lifetime: int = Field(
        default=60 * 60 * 4,
        ge=60,
        description="Access token lifetime in seconds",
    )

    refresh_token_lifetime: int = Field(
        default=60 * 60 * 24 * 7,
        ge=60,
        description="Refresh token lifetime in seconds",
    )

    authorization_code_lifetime: int = Field(
        default=600,
        ge=30,
        le=3600,
        description="Authorization code lifetime in seconds",
    )

    # ========================================
    # Validators
    # ========================================
    @field_validator("server_url", mode="after")
    @classmethod
    def set_server_url(cls, v: str | None, info: Any) -> str:
        """Default the public URL from the port if not provided."""
        if v:
            return v.rstrip("/")
        port = info.data.get("port", 3000)
        return f"http://localhost:{port}"

    @field_validator("api_key_file", mode="after")
    @classmethod
    def set_api_key_file(cls, v: Path | None, info: Any) -> Path:
        """Place the key file inside the data directory unless overridden."""
        if v:
            return v
        data_dir = info.data.get("data_dir") or Path("./data")
        return Path(data_dir) / "api_key.txt"

    # ========================================
    # Helper Methods
    # ========================================
    def get_supported_scopes_list(self) -> list[str]:
        """Get supported scopes as a list."""
        return [s.strip() for s in self.supported_scopes.split(",") if s.strip()]


# Singleton pattern with proper typing
_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
        logger.info("Settings initialized from environment")
        logger.debug("Data directory: %s", _settings_instance.data_dir)
    return _settings_instance


def reset_settings() -> None:
    """Reset settings instance (useful for testing)."""
    global _settings_instance
    _settings_instance = None
