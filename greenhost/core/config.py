"""
Configuration management for the GreenHost relay client.

Provides centralized, validated configuration from environment variables
with proper type checking and defaults. Secrets and relay topology are never
baked into the code; they come from the environment or a local .env file.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes", "y")
    return bool(v)


class RelayConfig(BaseSettings):
    """Encrypted relay configuration."""

    # Comma-separated, primary first
    urls: str = Field(default="", alias="GREENHOST_RELAY_URLS")
    encryption_key: Optional[SecretStr] = Field(default=None, alias="GREENHOST_RELAY_KEY")

    send_path: str = Field(default="/api/secure", alias="GREENHOST_RELAY_SEND_PATH")
    response_path: str = Field(default="/api/secure", alias="GREENHOST_RELAY_RESPONSE_PATH")
    status_path: str = Field(default="/api/status", alias="GREENHOST_RELAY_STATUS_PATH")

    # Timing (seconds)
    poll_timeout: float = Field(default=45.0, alias="GREENHOST_POLL_TIMEOUT")
    poll_interval: float = Field(default=2.0, alias="GREENHOST_POLL_INTERVAL")
    request_timeout: float = Field(default=30.0, alias="GREENHOST_REQUEST_TIMEOUT")
    status_timeout: float = Field(default=10.0, alias="GREENHOST_STATUS_TIMEOUT")

    use_dispatcher: bool = Field(default=False, alias="GREENHOST_RELAY_DISPATCHER")

    @field_validator("use_dispatcher", mode="before")
    @classmethod
    def parse_use_dispatcher(cls, v):
        return _parse_bool(v)

    @field_validator("poll_timeout", "poll_interval", "request_timeout", "status_timeout")
    @classmethod
    def positive_seconds(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @property
    def base_urls(self) -> List[str]:
        """Relay base URLs in failover order."""
        return [u.strip().rstrip("/") for u in self.urls.split(",") if u.strip()]

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )


class ProvisioningConfig(BaseSettings):
    """Defaults used when the SFTPGo backend omits connection details."""

    sftp_host: str = Field(default="172.26.181.241", alias="GREENHOST_SFTP_HOST")
    sftp_port: int = Field(default=2022, alias="GREENHOST_SFTP_PORT")
    web_client_url: str = Field(
        default="http://172.26.181.241:8080/web/client", alias="GREENHOST_WEB_CLIENT_URL"
    )
    admin_password_length: int = Field(default=24, alias="GREENHOST_ADMIN_PASSWORD_LENGTH")

    @field_validator("admin_password_length")
    @classmethod
    def validate_password_length(cls, v):
        if v < 12:
            raise ValueError("admin passwords shorter than 12 characters are not allowed")
        return v

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )


class Settings(BaseSettings):
    """Main application settings."""

    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    relay: RelayConfig = Field(default_factory=RelayConfig)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_bool(v)

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global settings
    settings = None


def validate_required_settings(config: Optional[Settings] = None) -> List[str]:
    """
    Validate that the settings needed to reach the relay are present.

    Returns:
        List of missing or invalid setting names
    """
    missing = []
    config = config or get_settings()

    if not config.relay.base_urls:
        missing.append("GREENHOST_RELAY_URLS")

    key = config.relay.encryption_key
    if key is None or not key.get_secret_value():
        missing.append("GREENHOST_RELAY_KEY")
    elif len(key.get_secret_value().encode("utf-8")) not in (16, 24, 32):
        missing.append("GREENHOST_RELAY_KEY (must be 16, 24 or 32 bytes)")

    return missing


def configuration_summary(config: Optional[Settings] = None) -> Dict[str, str]:
    """Return a printable summary of the configuration with secrets masked."""
    config = config or get_settings()
    relay = config.relay
    key = relay.encryption_key.get_secret_value() if relay.encryption_key else ""

    summary = {
        "Environment": config.environment,
        "Debug Mode": str(config.debug),
        "Relay URLs": ", ".join(relay.base_urls) or "✗ not configured",
        "Encryption Key": f"✓ set ({len(key)} chars)" if key else "✗ not configured",
        "Poll Timeout": f"{relay.poll_timeout:g}s",
        "Poll Interval": f"{relay.poll_interval:g}s",
        "Status Timeout": f"{relay.status_timeout:g}s",
        "Dispatcher": "✓" if relay.use_dispatcher else "✗",
        "SFTP Host": f"{config.provisioning.sftp_host}:{config.provisioning.sftp_port}",
    }
    return summary
