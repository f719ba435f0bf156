"""Configuration management for remote docker access."""

import asyncio
import base64
import binascii
import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import (
    ENV_REMOTE_CONFIG,
    ENV_SSH_CONNECT_TIMEOUT_MS,
    ENV_VPS_HOST,
    ENV_VPS_PASSWORD,
    ENV_VPS_PORT,
    ENV_VPS_PRIVATE_KEY,
    ENV_VPS_PRIVATE_KEY_PASSPHRASE,
    ENV_VPS_PRIVATE_KEY_PATH,
    ENV_VPS_USERNAME,
)
from .exceptions import ConfigurationError
from .settings import SSH_TIMEOUT

logger = structlog.get_logger()


class ConnectionParameters(BaseModel):
    """SSH connection parameters for the managed docker host.

    Immutable once built. At least one credential (key material, key path
    or password) is required.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    username: str
    port: int = Field(default=22, ge=1, le=65535)
    private_key: str | None = Field(default=None, repr=False)
    private_key_path: str | None = None
    passphrase: str | None = Field(default=None, repr=False)
    password: str | None = Field(default=None, repr=False)
    timeout: float = Field(default=SSH_TIMEOUT, gt=0, description="Deadline in seconds")

    @model_validator(mode="after")
    def _require_credential(self) -> "ConnectionParameters":
        if not (self.private_key or self.private_key_path or self.password):
            raise ValueError("one of private_key, private_key_path or password is required")
        return self

    @property
    def address(self) -> str:
        """user@host:port, for log context."""
        return f"{self.username}@{self.host}:{self.port}"


class RemoteSettings(BaseSettings):
    """Connection settings sourced from the environment and `.env`."""

    host: str | None = Field(default=None, validation_alias=ENV_VPS_HOST)
    port: int | None = Field(default=None, validation_alias=ENV_VPS_PORT)
    username: str | None = Field(default=None, validation_alias=ENV_VPS_USERNAME)
    private_key_b64: str | None = Field(default=None, validation_alias=ENV_VPS_PRIVATE_KEY)
    private_key_path: str | None = Field(default=None, validation_alias=ENV_VPS_PRIVATE_KEY_PATH)
    password: str | None = Field(default=None, validation_alias=ENV_VPS_PASSWORD)
    passphrase: str | None = Field(default=None, validation_alias=ENV_VPS_PRIVATE_KEY_PASSPHRASE)
    timeout_ms: int | None = Field(default=None, validation_alias=ENV_SSH_CONNECT_TIMEOUT_MS)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def overrides(self) -> dict[str, Any]:
        """Return only the values that were actually set."""
        values: dict[str, Any] = {}
        for key in ("host", "port", "username", "private_key_path", "password", "passphrase"):
            value = getattr(self, key)
            if value not in (None, ""):
                values[key] = value
        if self.private_key_b64:
            values["private_key"] = _decode_private_key(self.private_key_b64)
        if self.timeout_ms:
            values["timeout"] = self.timeout_ms / 1000
        return values


def _decode_private_key(encoded: str) -> str:
    """Decode base64 key material; PEM text passed as-is is accepted too."""
    if encoded.lstrip().startswith("-----BEGIN"):
        return encoded
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigurationError(f"VPS_PRIVATE_KEY is not valid base64 key material: {e}") from e


def load_config(config_path: str | None = None) -> ConnectionParameters:
    """Load connection parameters (synchronous interface).

    Args:
        config_path: Optional path to a YAML file with an ``ssh:`` section

    Returns:
        Validated connection parameters

    Note:
        This function cannot be called from within a running event loop.
        For async code, use load_config_async() instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(load_config_async(config_path))
    raise RuntimeError(
        "load_config() cannot be called from within an async context. "
        "Use 'await load_config_async()' instead."
    )


async def load_config_async(config_path: str | None = None) -> ConnectionParameters:
    """Load connection parameters from YAML, `.env` and the environment.

    Precedence, lowest first: YAML file, `.env`, process environment.

    Args:
        config_path: Optional path to a YAML file with an ``ssh:`` section

    Returns:
        Validated connection parameters

    Raises:
        ConfigurationError: If host/username are missing or values are invalid
    """
    load_dotenv()

    values: dict[str, Any] = {}
    path_value = config_path or os.getenv(ENV_REMOTE_CONFIG)
    if path_value:
        yaml_config = await _load_yaml_config(Path(path_value))
        values.update(yaml_config.get("ssh") or {})

    values.update(RemoteSettings().overrides())

    if not values.get("host") or not values.get("username"):
        raise ConfigurationError("Missing VPS_HOST or VPS_USERNAME")

    try:
        params = ConnectionParameters(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid connection parameters: {e}") from e

    logger.info(
        "Connection parameters loaded",
        address=params.address,
        auth=_auth_kind(params),
        timeout=params.timeout,
    )
    return params


async def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load YAML configuration file."""
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")
    try:
        content = await asyncio.to_thread(config_path.read_text)
        loaded = yaml.safe_load(content)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _auth_kind(params: ConnectionParameters) -> str:
    if params.private_key or params.private_key_path:
        return "key"
    return "password"
