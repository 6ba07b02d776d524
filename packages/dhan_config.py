"""
Dhan API Configuration.

Manages connection settings for the Dhan brokerage REST API (v2).
Credentials are never stored in code; they come from environment variables
or a local .env file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DhanConfigError(Exception):
    """Raised when the Dhan API configuration is incomplete."""
    pass


class DhanConfig(BaseSettings):
    """
    Dhan API configuration from environment variables.

    Environment Variables:
        DHAN_ACCESS_TOKEN: API access token (required for any upstream call)
        DHAN_CLIENT_ID: Dhan client ID used when a request omits dhanClientId
        DHAN_BASE_URL: REST base URL (default: https://api.dhan.co/v2)
        DHAN_TIMEOUT: HTTP timeout in seconds (default: 15)
        DHAN_READONLY_MODE: Block order placement/modification/cancellation (default: False)
        DHAN_TRADERS_CONTROL_FILE: Where traders control settings are persisted

    Usage:
        config = DhanConfig()
        print(f"Talking to {config.base_url} as {config.client_id}")
    """

    model_config = SettingsConfigDict(
        env_prefix="DHAN_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Credentials
    access_token: str = Field(default="", description="Dhan API access token")
    client_id: str = Field(default="", description="Dhan client ID")

    # Connection settings
    base_url: str = Field(default="https://api.dhan.co/v2", description="Dhan REST base URL")
    timeout: float = Field(default=15.0, ge=1.0, le=120.0, description="HTTP timeout (seconds)")

    # Safety settings
    readonly_mode: bool = Field(default=False, description="Force read-only mode (no order writes)")

    # Local state
    traders_control_file: str = Field(
        default=".traders_control_storage.json",
        description="File holding persisted traders control settings",
    )

    @property
    def has_credentials(self) -> bool:
        """Check if an access token is configured."""
        return bool(self.access_token.strip())

    @property
    def can_write(self) -> bool:
        """Check if order writes are allowed."""
        return not self.readonly_mode

    def require_credentials(self) -> None:
        """
        Ensure the upstream API can be called.

        Raises:
            DhanConfigError: If the access token or base URL is missing
        """
        if not self.has_credentials:
            raise DhanConfigError("Access token is required")
        if not self.base_url.strip():
            raise DhanConfigError("Dhan base URL is not configured")

    def to_dict(self) -> dict:
        """Export config as dictionary (safe for logging)."""
        return {
            "client_id": self.client_id,
            "base_url": self.base_url,
            "timeout": self.timeout,
            "readonly_mode": self.readonly_mode,
            "has_credentials": self.has_credentials,
            "traders_control_file": self.traders_control_file,
        }


# Global config instance (singleton pattern)
_config_instance: DhanConfig | None = None


def get_dhan_config(force_reload: bool = False) -> DhanConfig:
    """
    Get global Dhan configuration singleton.

    Args:
        force_reload: Force reload from environment (useful for testing)

    Returns:
        DhanConfig instance
    """
    global _config_instance

    if _config_instance is None or force_reload:
        _config_instance = DhanConfig()

    return _config_instance


def reset_dhan_config():
    """Reset global config instance (for testing)."""
    global _config_instance
    _config_instance = None
