"""
Project Service

Groups containers into projects (auto projects from compose labels, manual
projects from an external store) and applies lifecycle actions across a
project's members.
"""

import asyncio
import uuid
from typing import Protocol

import structlog

from ..constants import AUTO_PROJECT_PREFIX, STANDALONE_PROJECT_ID, STANDALONE_PROJECT_NAME
from ..core.exceptions import DockerRemoteError, NotFoundError, ValidationError
from ..models.container import ContainerActionLiteral, ContainerActionResult, ContainerRecord
from ..models.project import Project, ProjectListing, ProjectWithContainers
from .container import ContainerService


class ProjectStore(Protocol):
    """Storage for operator-defined (manual) projects."""

    async def create(self, name: str, container_ids: list[str]) -> Project: ...

    async def update(
        self, project_id: str, name: str | None = None, container_ids: list[str] | None = None
    ) -> Project: ...

    async def remove(self, project_id: str) -> None: ...

    # Defined last: the method name shadows the builtin in the class body
    async def list(self) -> list[Project]: ...


class InMemoryProjectStore:
    """Process-local ProjectStore."""

    def __init__(self, projects: list[Project] | None = None):
        self._projects: list[Project] = list(projects or [])

    async def create(self, name: str, container_ids: list[str]) -> Project:
        if not name or not name.strip():
            raise ValidationError("Name is required")
        project = Project(
            id=str(uuid.uuid4()),
            name=name.strip(),
            container_ids=list(container_ids),
            source="manual",
        )
        self._projects.append(project)
        return project.model_copy(deep=True)

    async def update(
        self, project_id: str, name: str | None = None, container_ids: list[str] | None = None
    ) -> Project:
        for index, project in enumerate(self._projects):
            if project.id != project_id:
                continue
            changes: dict = {}
            if name is not None:
                changes["name"] = name
            if container_ids is not None:
                changes["container_ids"] = list(container_ids)
            self._projects[index] = project.model_copy(update=changes)
            return self._projects[index].model_copy(deep=True)
        raise NotFoundError(f"Project '{project_id}' not found")

    async def remove(self, project_id: str) -> None:
        self._projects = [project for project in self._projects if project.id != project_id]

    async def list(self) -> list[Project]:
        return [project.model_copy(deep=True) for project in self._projects]


def group_auto_projects(
    containers: list[ContainerRecord], include_standalone: bool = True
) -> list[Project]:
    """Group containers by compose project label.

    Containers without the label form one ``auto:standalone`` project when
    ``include_standalone`` is set. Group order follows first appearance.
    """
    groups: dict[str, list[str]] = {}
    standalone: list[str] = []
    for container in containers:
        if container.compose_project:
            groups.setdefault(container.compose_project, []).append(container.id)
        else:
            standalone.append(container.id)

    projects = [
        Project(
            id=f"{AUTO_PROJECT_PREFIX}{name}",
            name=name,
            container_ids=ids,
            source="auto",
            compose_project=name,
        )
        for name, ids in groups.items()
    ]
    if include_standalone and standalone:
        projects.append(
            Project(
                id=STANDALONE_PROJECT_ID,
                name=STANDALONE_PROJECT_NAME,
                container_ids=standalone,
                source="auto",
            )
        )
    return projects


def attach_containers(
    projects: list[Project], containers: list[ContainerRecord]
) -> list[ProjectWithContainers]:
    """Pair each project with the inventory records of its members."""
    by_id = {container.id: container for container in containers}
    return [
        ProjectWithContainers(
            project=project,
            containers=[by_id[cid] for cid in project.container_ids if cid in by_id],
        )
        for project in projects
    ]


class ProjectService:
    """Service for project listing and project-wide lifecycle actions."""

    def __init__(self, containers: ContainerService, store: ProjectStore | None = None):
        self.containers = containers
        self.store: ProjectStore = store if store is not None else InMemoryProjectStore()
        self.logger = structlog.get_logger()

    async def list_projects(self) -> ProjectListing:
        """Manual and auto projects from one inventory snapshot."""
        inventory = await self.containers.list_containers()
        manual = await self.store.list()
        auto = group_auto_projects(inventory)
        return ProjectListing(
            manual_projects=attach_containers(manual, inventory),
            auto_projects=attach_containers(auto, inventory),
        )

    async def get_project(self, project_id: str) -> ProjectWithContainers:
        """Resolve a manual or auto project and its current containers.

        Raises:
            NotFoundError: If no project has ``project_id``
        """
        inventory = await self.containers.list_containers()
        manual = await self.store.list()
        for project in [*manual, *group_auto_projects(inventory)]:
            if project.id == project_id:
                return attach_containers([project], inventory)[0]
        raise NotFoundError(f"Project '{project_id}' not found")

    async def start_project(self, project_id: str) -> list[ContainerActionResult]:
        return await self.apply_action(project_id, "start")

    async def stop_project(self, project_id: str) -> list[ContainerActionResult]:
        return await self.apply_action(project_id, "stop")

    async def restart_project(self, project_id: str) -> list[ContainerActionResult]:
        return await self.apply_action(project_id, "restart")

    async def apply_action(
        self, project_id: str, action: ContainerActionLiteral
    ) -> list[ContainerActionResult]:
        """Run ``action`` on every container of a project concurrently.

        No ordering or atomicity across containers: one failure is reported
        in its own result and does not stop the others.
        """
        resolved = await self.get_project(project_id)
        results = await asyncio.gather(
            *(self._apply_one(container.id, action) for container in resolved.containers)
        )
        failed = sum(1 for result in results if not result.success)
        self.logger.info(
            "Project action completed",
            project_id=project_id,
            action=action,
            containers=len(results),
            failed=failed,
        )
        return list(results)

    async def _apply_one(
        self, container_id: str, action: ContainerActionLiteral
    ) -> ContainerActionResult:
        try:
            output = await self.containers.manage_container(container_id, action)
        except DockerRemoteError as e:
            self.logger.warning(
                "Container action failed", container_id=container_id, action=action, error=str(e)
            )
            return ContainerActionResult(
                container_id=container_id, action=action, success=False, error=str(e)
            )
        return ContainerActionResult(
            container_id=container_id, action=action, success=True, output=output
        )
