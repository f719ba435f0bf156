"""Operational limits and timeouts for remote docker operations.

Provides centralized configuration using Pydantic BaseSettings
with environment variable support for operational tuning.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OperationSettings(BaseSettings):
    """Remote operation limits."""

    ssh_timeout: float = Field(
        15.0, alias="SSH_TIMEOUT", description="Default connect/command deadline in seconds"
    )

    poll_interval: float = Field(
        0.05, alias="SSH_POLL_INTERVAL", description="Idle wait between channel reads in seconds"
    )

    default_log_lines: int = Field(
        200, alias="DEFAULT_LOG_LINES", description="Log tail length when none is requested"
    )

    max_log_lines: int = Field(
        10000, alias="MAX_LOG_LINES", description="Upper bound for a log tail request"
    )

    deploy_timeout: float = Field(
        600.0, alias="DEPLOY_TIMEOUT", description="Deadline for compose pipelines in seconds"
    )

    max_cpu_limit: float = Field(
        128, alias="MAX_CPU_LIMIT", description="Largest --cpus value accepted by updates"
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


# Global settings instance
operation_settings = OperationSettings()

# Constants for easy import
SSH_TIMEOUT: float = operation_settings.ssh_timeout
POLL_INTERVAL: float = operation_settings.poll_interval
DEFAULT_LOG_LINES: int = operation_settings.default_log_lines
MAX_LOG_LINES: int = operation_settings.max_log_lines
DEPLOY_TIMEOUT: float = operation_settings.deploy_timeout
MAX_CPU_LIMIT: float = operation_settings.max_cpu_limit

# Bytes read from a channel per recv call
CHANNEL_READ_SIZE = 32768
