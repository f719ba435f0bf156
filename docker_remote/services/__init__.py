"""
Docker Remote Services

Service layer over the remote execution channel.
"""

from .container import ContainerService  # noqa: F401
from .deploy import DeployOrchestrator  # noqa: F401
from .project import InMemoryProjectStore, ProjectService, ProjectStore  # noqa: F401
from .system import SystemService  # noqa: F401

__all__ = [
    "ContainerService",
    "DeployOrchestrator",
    "InMemoryProjectStore",
    "ProjectService",
    "ProjectStore",
    "SystemService",
]
