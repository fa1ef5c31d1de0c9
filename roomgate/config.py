"""
Centralized Configuration Management

Loads configuration from environment variables and .env files, and resolves
login credentials from a mapping, a JSON credentials file or the
environment.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError, MissingCredentialsError

logger = logging.getLogger(__name__)

DEFAULT_HOMESERVER = "https://matrix.org"
DEFAULT_INVITE_POWER_LEVEL = 50


class MatrixConfig(BaseSettings):
    """Matrix-specific configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MATRIX_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    homeserver: Optional[str] = None
    user_id: Optional[str] = None
    password: Optional[str] = None
    device_name: str = "roomgate"
    default_invite_power_level: int = DEFAULT_INVITE_POWER_LEVEL
    sync_timeout_ms: int = 30000
    initial_sync_limit: int = 10


class AppConfig(BaseSettings):
    """
    Application configuration with a nested Matrix section.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    log_level: str = "INFO"
    log_format: str = "text"
    log_file: Optional[str] = None

    # Read when AppConfig is built, not at import
    matrix: MatrixConfig = Field(default_factory=MatrixConfig)


class Credentials(BaseModel):
    """Login credentials; field names accept the camelCase file keys."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    homeserver_url: str = Field(alias="homeserverUrl")
    username: str
    password: str = Field(repr=False)


# File keys and the model fields they populate
CREDENTIAL_FIELDS = {
    "homeserverUrl": "homeserver_url",
    "username": "username",
    "password": "password",
}


def _find_missing(data: Mapping[str, Any]) -> list:
    missing = []
    for alias, name in CREDENTIAL_FIELDS.items():
        value = data.get(alias, data.get(name))
        if not isinstance(value, str) or not value:
            missing.append(alias)
    return missing


def credentials_from_mapping(data: Mapping[str, Any]) -> Credentials:
    """Validate presence of every credential field and build Credentials."""
    missing = _find_missing(data)
    if missing:
        raise MissingCredentialsError(missing)
    return Credentials(
        homeserver_url=data.get("homeserverUrl", data.get("homeserver_url")),
        username=data["username"],
        password=data["password"],
    )


def load_credentials_file(path: Union[str, Path]) -> Credentials:
    """Read credentials from a JSON file."""
    path = Path(path)
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read credentials file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Credentials file {path} must contain a JSON object")

    logger.debug(f"Config: Loaded credentials file {path}")
    return credentials_from_mapping(data)


def load_credentials(
    source: Optional[Union[Mapping[str, Any], str, Path]] = None,
    matrix_config: Optional[MatrixConfig] = None,
) -> Credentials:
    """
    Resolve credentials from an explicit source or the environment.

    Args:
        source: A mapping with homeserverUrl/username/password, or a path to
            a JSON file holding one. When omitted the MATRIX_* settings are
            used, with the homeserver defaulting to matrix.org.
        matrix_config: Settings to fall back on; defaults to the global ones.

    Raises:
        MissingCredentialsError: a required field is absent or empty.
        ConfigurationError: the credentials file cannot be read.
    """
    if isinstance(source, Mapping):
        return credentials_from_mapping(source)
    if source is not None:
        return load_credentials_file(source)

    matrix_config = matrix_config or settings.matrix
    data: Dict[str, Any] = {
        "homeserverUrl": matrix_config.homeserver or DEFAULT_HOMESERVER,
        "username": matrix_config.user_id,
        "password": matrix_config.password,
    }
    return credentials_from_mapping(data)


def create_settings() -> AppConfig:
    """Create settings instance from environment variables and .env files only."""
    return AppConfig()


settings = create_settings()


def get_settings() -> AppConfig:
    """Get the global settings instance."""
    return settings
