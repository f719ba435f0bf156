"""Host overview data models."""

from pydantic import Field

from .container import RemoteModel


class MemoryInfo(RemoteModel):
    """Host memory figures in MiB as reported by `free -m`."""

    total_mb: int = 0
    used_mb: int = 0
    free_mb: int = 0
    used_percent: int = 0


class DiskUsage(RemoteModel):
    """One mounted filesystem as reported by `df -B1`."""

    fs: str
    size_bytes: int = 0
    used_bytes: int = 0
    avail_bytes: int = 0
    used_percent: int = 0
    target: str = "/"


class SystemOverview(RemoteModel):
    """CPU, load, memory and disk snapshot of the docker host."""

    cores: int = 0
    load: list[float] = Field(default_factory=list)
    memory: MemoryInfo = Field(default_factory=MemoryInfo)
    disk: list[DiskUsage] = Field(default_factory=list)


class ConnectionCheck(RemoteModel):
    """Outcome of a round-trip connectivity check against the docker host."""

    ok: bool
    output: str | None = None
    error: str | None = None
