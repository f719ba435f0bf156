"""Data models for docker_remote."""

from .container import (  # noqa: F401
    ContainerActionResult,
    ContainerInspect,
    ContainerRecord,
    ContainerStats,
    EnvVar,
    RemoteModel,
    ResourceLimits,
    ResourceUpdateResult,
)
from .project import (  # noqa: F401
    ComposeFile,
    DeployResult,
    Project,
    ProjectFiles,
    ProjectListing,
    ProjectWithContainers,
)
from .system import (  # noqa: F401
    ConnectionCheck,
    DiskUsage,
    MemoryInfo,
    SystemOverview,
)

__all__ = [
    # Container models
    "ContainerActionResult",
    "ContainerInspect",
    "ContainerRecord",
    "ContainerStats",
    "EnvVar",
    "RemoteModel",
    "ResourceLimits",
    "ResourceUpdateResult",
    # Project models
    "ComposeFile",
    "DeployResult",
    "Project",
    "ProjectFiles",
    "ProjectListing",
    "ProjectWithContainers",
    # System models
    "ConnectionCheck",
    "DiskUsage",
    "MemoryInfo",
    "SystemOverview",
]
