"""
Configuration Management

Pydantic-settings based configuration for TLS-RPT ingest.
All settings can be overridden via environment variables or a .env file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with TLSRPT_ and are case-insensitive.
    Example: TLSRPT_REPORTS_DIR=/var/log/tlsrpt
    """

    model_config = SettingsConfigDict(
        env_prefix="TLSRPT_",
        env_file=[".env.local", ".env"],  # Try .env.local first
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # IMAP Configuration
    imap_host: str | None = Field(
        default=None,
        description="IMAP server hostname",
    )
    imap_port: int = Field(
        default=993,
        description="IMAP server port",
    )
    imap_user: str | None = Field(
        default=None,
        description="IMAP login user",
    )
    imap_password: SecretStr | None = Field(
        default=None,
        description="IMAP login password",
    )
    imap_ssl: bool = Field(
        default=True,
        description="Connect over implicit TLS",
    )
    imap_folder: str = Field(
        default="INBOX",
        description="Mailbox folder holding TLS-RPT report emails",
    )
    imap_readonly: bool = Field(
        default=True,
        description="Open the folder read-only (messages are never marked seen)",
    )
    imap_timeout: float = Field(
        default=30.0,
        description="Socket timeout in seconds",
    )

    # Output Configuration
    reports_dir: Path = Field(
        default=Path("./reports"),
        description="Directory flattened records are written to",
    )
    owner_uid: int | None = Field(
        default=None,
        description="Numeric user id to chown written records to",
    )
    owner_gid: int | None = Field(
        default=None,
        description="Numeric group id to chown written records to",
    )
    write_mode: Literal["stream", "batch"] = Field(
        default="stream",
        description="stream: write per attachment; batch: write after the session closes",
    )

    # Pipeline Configuration
    chunk_size: int = Field(
        default=64 * 1024,
        gt=0,
        description="Bytes per chunk pushed through the decode chain",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def has_imap_credentials(self) -> bool:
        """Whether host, user and password are all configured."""
        return bool(self.imap_host and self.imap_user and self.imap_password)

    @property
    def changes_ownership(self) -> bool:
        """Whether written records should be re-owned."""
        return self.owner_uid is not None or self.owner_gid is not None

    @property
    def imap_config(self) -> dict:
        """IMAPClient constructor arguments."""
        return {
            "host": self.imap_host,
            "port": self.imap_port,
            "ssl": self.imap_ssl,
            "timeout": self.imap_timeout,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are loaded only once.
    Call Settings.model_validate({...}) in tests to override.
    """
    return Settings()
