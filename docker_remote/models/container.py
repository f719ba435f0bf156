"""Container-related data models."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class RemoteModel(BaseModel):
    """Base model with common serialization settings."""

    def model_dump(self, **kwargs) -> dict[str, Any]:
        """Convert to dict with exclude_none by default."""
        kwargs.setdefault("exclude_none", True)
        return super().model_dump(**kwargs)


class ContainerRecord(RemoteModel):
    """One row of the container inventory. Rebuilt on every query."""

    id: str
    name: str
    image: str = ""
    state: str = ""
    status: str = ""
    ports: str | None = None
    created_at: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    compose_project: str | None = None

    @property
    def is_running(self) -> bool:
        return self.state == "running"


class ContainerStats(RemoteModel):
    """Point-in-time resource statistics for a running container."""

    id: str
    name: str = ""
    cpu_percent: float | None = None
    mem_usage_bytes: int | None = None
    mem_limit_bytes: int | None = None
    mem_percent: float | None = None


class EnvVar(RemoteModel):
    """A single KEY=VALUE environment entry."""

    key: str
    value: str = ""


class ResourceLimits(RemoteModel):
    """CPU share and memory ceiling, in docker CLI notation."""

    cpus: str | None = None
    memory: str | None = None


class ContainerInspect(RemoteModel):
    """Environment and resource limits of a container."""

    env: list[EnvVar] = Field(default_factory=list)
    limits: ResourceLimits = Field(default_factory=ResourceLimits)


ContainerActionLiteral = Literal["start", "stop", "restart"]


class ContainerActionResult(RemoteModel):
    """Outcome of one lifecycle command within a batch."""

    container_id: str
    action: ContainerActionLiteral
    success: bool
    output: str = ""
    error: str | None = None


class ResourceUpdateResult(RemoteModel):
    """Result of `docker update` on a container."""

    container_id: str
    command: str
    output: str = ""
