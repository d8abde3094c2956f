"""
Configuration for the encryption key manager.

Values come from environment variables, matched case-insensitively against
the field names (ENCRYPTION_KEY_FETCH_URL, HTTP_REQUEST_RETRY_LIMIT, ...).
A .dev.env file in the working directory is read too; real environment
variables win over it.
"""

from typing import Optional

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HTTP_REQUEST_RETRY_LIMIT = 3
DEFAULT_ENCRYPTION_KEY_MAX_AGE_SECONDS = 7 * 24 * 60 * 60
DEFAULT_ENCRYPTION_KEY_FETCH_PERIOD_SECONDS = 24 * 60 * 60
DEFAULT_DATABASE_URL = "sqlite:///encryption_keys.db"


class ConfigurationError(ValueError):
    """Missing or invalid configuration, or a request that cannot be built from it."""
    pass


class KeyManagerConfig(BaseSettings):
    """Settings consumed by the key manager and the service around it."""

    model_config = SettingsConfigDict(
        env_file=".dev.env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    encryption_key_fetch_url: Optional[str] = None
    http_request_retry_limit: int = DEFAULT_HTTP_REQUEST_RETRY_LIMIT
    encryption_key_max_age_seconds: int = DEFAULT_ENCRYPTION_KEY_MAX_AGE_SECONDS
    database_url: str = DEFAULT_DATABASE_URL
    background_key_fetch_enabled: bool = True
    encryption_key_fetch_period_seconds: int = DEFAULT_ENCRYPTION_KEY_FETCH_PERIOD_SECONDS
    background_executor_workers: int = 4
    log_level: str = "INFO"

    @field_validator(
        "http_request_retry_limit",
        "encryption_key_max_age_seconds",
        "encryption_key_fetch_period_seconds",
        "background_executor_workers",
    )
    @classmethod
    def must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


def load_config() -> KeyManagerConfig:
    """
    Build the config from the environment and .dev.env.

    Returns:
        KeyManagerConfig

    Raises:
        ConfigurationError: If a variable has an invalid value
    """
    try:
        return KeyManagerConfig()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid key manager configuration: {e}") from e
