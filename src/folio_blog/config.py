"""Configuration for the blog data layer, read from FOLIO_* environment variables."""

import os
from typing import Any, Dict, Literal, Optional

import pydantic
from cryptography.fernet import Fernet
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError


class Settings(BaseModel):
    """Application settings with environment variable support."""

    # Backend namespace
    app_id: str = Field(default="default-app-id", min_length=1)
    author_name: str = Field(default="Site Owner", min_length=1)

    # Store
    db_path: str = Field(default=":memory:")
    polling_interval: float = Field(default=0.2, gt=0)

    # Identity
    session_key: Optional[str] = Field(default=None)
    initial_auth_token: Optional[str] = Field(default=None)
    session_ttl: Optional[int] = Field(default=None, gt=0)

    # Bounded waits on startup
    auth_timeout: float = Field(default=10.0, gt=0)
    first_snapshot_timeout: float = Field(default=10.0, gt=0)

    # Keep the delete prompt open when the delete call fails
    keep_delete_prompt_on_failure: bool = Field(default=False)

    # Logging
    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = Field(default="INFO")

    def __init__(self, **kwargs):
        env_values = {}

        env_mapping = {
            "FOLIO_APP_ID": "app_id",
            "FOLIO_AUTHOR_NAME": "author_name",
            "FOLIO_DB_PATH": "db_path",
            "FOLIO_POLLING_INTERVAL": "polling_interval",
            "FOLIO_SESSION_KEY": "session_key",
            "FOLIO_INITIAL_AUTH_TOKEN": "initial_auth_token",
            "FOLIO_SESSION_TTL": "session_ttl",
            "FOLIO_AUTH_TIMEOUT": "auth_timeout",
            "FOLIO_FIRST_SNAPSHOT_TIMEOUT": "first_snapshot_timeout",
            "FOLIO_KEEP_DELETE_PROMPT_ON_FAILURE": "keep_delete_prompt_on_failure",
            "FOLIO_LOG_LEVEL": "log_level",
        }

        for env_var, field_name in env_mapping.items():
            if env_var in os.environ:
                value = os.environ[env_var]
                if field_name == "keep_delete_prompt_on_failure":
                    value = value.lower() in ("true", "1", "yes", "on")
                env_values[field_name] = value

        # Keyword arguments win over the environment
        final_values = {**env_values, **kwargs}
        super().__init__(**final_values)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value


def load_settings(config: Dict[str, Any] | None = None) -> Settings:
    """
    Builds and validates the settings, raising `ConfigurationError` for
    anything that would stop the bootstrap from completing.
    """
    try:
        settings = Settings(**(config or {}))
    except pydantic.ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if settings.initial_auth_token and not settings.session_key:
        raise ConfigurationError(
            "`session_key` must be provided to restore `initial_auth_token`."
        )
    if settings.session_key:
        try:
            Fernet(settings.session_key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"`session_key` is not a valid Fernet key: {e}") from e
    return settings
