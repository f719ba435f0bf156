"""Compose project and deploy data models."""

from typing import Literal

from pydantic import Field

from .container import ContainerRecord, RemoteModel

ProjectSource = Literal["auto", "manual"]
ComposeFileKind = Literal["env", "compose", "other"]


class Project(RemoteModel):
    """A group of containers, derived from a compose label or defined by an operator."""

    id: str
    name: str
    container_ids: list[str] = Field(default_factory=list)
    source: ProjectSource
    compose_project: str | None = None


class ProjectWithContainers(RemoteModel):
    """A project together with the inventory records of its members."""

    project: Project
    containers: list[ContainerRecord] = Field(default_factory=list)


class ProjectListing(RemoteModel):
    """Manual and auto projects from one inventory snapshot."""

    manual_projects: list[ProjectWithContainers] = Field(default_factory=list)
    auto_projects: list[ProjectWithContainers] = Field(default_factory=list)


class ComposeFile(RemoteModel):
    """A compose or dotenv file discovered for a project."""

    name: str
    path: str
    kind: ComposeFileKind


class ProjectFiles(RemoteModel):
    """Working directory of a compose project and its relevant files."""

    project_path: str
    files: list[ComposeFile] = Field(default_factory=list)


class DeployResult(RemoteModel):
    """Combined output of a deploy pipeline and its classified outcome."""

    command: str
    output: str
    success: bool
    exit_status: int | None = None
