"""Compose project discovery and project file access on the remote host."""

import posixpath
import re
import shlex
import time

import structlog

from ..constants import (
    COMPOSE_FILENAMES,
    DOCKER_COMPOSE_PROJECT,
    DOCKER_INSPECT_WORKING_DIR,
    DOCKER_PS_PROJECT_FILTER,
    GO_TEMPLATE_NO_VALUE,
    HEREDOC_DELIMITER_PREFIX,
    ROOT_ENV_FILENAMES,
)
from ..models.project import ComposeFile, ProjectFiles
from .exceptions import DockerCommandError, NotFoundError
from .ssh_client import CommandExecutor
from .validation import validate_file_path, validate_project_name

logger = structlog.get_logger()

ENV_FILE_DIRECTIVE = re.compile(r"^\s*env_file:\s*(.*?)\s*$")
LIST_ITEM = re.compile(r"^\s+-\s*(.*?)\s*$")
INLINE_COMMENT = re.compile(r"\s+#.*$")


def _clean_reference(raw: str) -> str:
    """Strip comments, long-syntax ``path:`` keys and quotes from one env_file entry."""
    value = INLINE_COMMENT.sub("", raw).strip()
    if value.startswith("path:"):
        value = value[len("path:"):].strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return value.strip()


def scan_env_file_references(compose_text: str) -> list[str]:
    """Find paths referenced by ``env_file:`` directives in a compose document.

    Text scan rather than a YAML parse, so a broken document still yields
    whatever references it can. Supports the scalar form
    (``env_file: .env``), the block list form (``env_file:`` followed by
    ``- path`` items, including the long ``- path: x`` form) and an inline
    flow list (``env_file: [a, b]``).
    """
    references: list[str] = []
    lines = compose_text.splitlines()
    index = 0
    while index < len(lines):
        match = ENV_FILE_DIRECTIVE.match(lines[index])
        index += 1
        if not match:
            continue

        inline = INLINE_COMMENT.sub("", match.group(1)).strip()
        if inline:
            if inline.startswith("[") and inline.endswith("]"):
                references.extend(_clean_reference(item) for item in inline[1:-1].split(","))
            else:
                references.append(_clean_reference(inline))
            continue

        item_indent: int | None = None
        while index < len(lines):
            line = lines[index]
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                index += 1
                continue
            indent = len(line) - len(line.lstrip())
            item = LIST_ITEM.match(line)
            if item and (item_indent is None or indent == item_indent):
                item_indent = indent
                references.append(_clean_reference(item.group(1)))
            elif item_indent is None or indent <= item_indent:
                # Back at the service level
                break
            index += 1

    return [ref for ref in references if ref and not ref.startswith("#")]


class ComposeProjectResolver:
    """Locates compose projects and their compose/env files on the remote host."""

    def __init__(self, executor: CommandExecutor):
        self.executor = executor

    async def find_compose_project_path(self, project_name: str) -> str | None:
        """Find the working directory of a compose project.

        Picks any container labelled with the project and reads the working
        directory label compose recorded on it.

        Args:
            project_name: Value of the ``com.docker.compose.project`` label

        Returns:
            Absolute working directory, or None when no container or label exists
        """
        validate_project_name(project_name)

        label_filter = shlex.quote(f"label={DOCKER_COMPOSE_PROJECT}={project_name}")
        command = DOCKER_PS_PROJECT_FILTER.format(label_filter)
        result = await self.executor.execute(command)
        result.raise_for_status(command)

        container_id = next(
            (line.strip() for line in result.stdout.splitlines() if line.strip()), None
        )
        if not container_id:
            logger.info("No container found for compose project", project=project_name)
            return None

        inspect_command = DOCKER_INSPECT_WORKING_DIR.format(shlex.quote(container_id))
        inspect = await self.executor.execute(inspect_command)
        if not inspect.ok:
            logger.warning(
                "Could not inspect compose container",
                project=project_name,
                container_id=container_id,
                error=inspect.stderr.strip(),
            )
            return None

        working_dir = inspect.stdout.strip()
        if not working_dir or working_dir == GO_TEMPLATE_NO_VALUE:
            logger.info("Compose project has no working directory label", project=project_name)
            return None

        logger.debug("Resolved compose project path", project=project_name, path=working_dir)
        return working_dir

    async def file_exists(self, file_path: str) -> bool:
        """One remote round-trip: does a regular file exist at ``file_path``."""
        result = await self.executor.execute(f"test -f {shlex.quote(file_path)}")
        return result.exit_status == 0

    async def list_project_files(self, project_path: str) -> list[ComposeFile]:
        """Enumerate the compose file and env files relevant to a project directory.

        The first existing conventional compose file is taken; every
        ``env_file`` it references is probed, followed by the conventional
        dotenv files at the project root. Each path is probed at most once.

        Args:
            project_path: Absolute project working directory

        Returns:
            Discovered files, compose file first
        """
        project_path = project_path.rstrip("/") or "/"
        files: list[ComposeFile] = []
        seen: set[str] = set()

        compose_path: str | None = None
        for file_name in COMPOSE_FILENAMES:
            candidate = posixpath.join(project_path, file_name)
            seen.add(candidate)
            if await self.file_exists(candidate):
                files.append(ComposeFile(name=file_name, path=candidate, kind="compose"))
                compose_path = candidate
                break

        if compose_path:
            content = await self.executor.execute(f"cat {shlex.quote(compose_path)}")
            if content.ok:
                for reference in scan_env_file_references(content.stdout):
                    full_path = posixpath.normpath(posixpath.join(project_path, reference))
                    if full_path in seen:
                        continue
                    seen.add(full_path)
                    if await self.file_exists(full_path):
                        files.append(ComposeFile(name=reference, path=full_path, kind="env"))
            else:
                logger.warning(
                    "Could not read compose file",
                    path=compose_path,
                    error=content.stderr.strip(),
                )

        for env_name in ROOT_ENV_FILENAMES:
            candidate = posixpath.join(project_path, env_name)
            if candidate in seen:
                continue
            seen.add(candidate)
            if await self.file_exists(candidate):
                files.append(ComposeFile(name=env_name, path=candidate, kind="env"))

        logger.info("Listed project files", project_path=project_path, files=len(files))
        return files

    async def get_project_files(self, project_name: str) -> ProjectFiles:
        """Resolve a project's directory and list its files.

        Raises:
            NotFoundError: If the project has no resolvable working directory
        """
        project_path = await self.find_compose_project_path(project_name)
        if not project_path:
            raise NotFoundError(f"Compose project '{project_name}' not found")
        files = await self.list_project_files(project_path)
        return ProjectFiles(project_path=project_path, files=files)

    async def read_project_file(self, file_path: str) -> str:
        """Return the contents of a remote file.

        Raises:
            ValidationError: If the path is unsafe (checked before any remote call)
            DockerCommandError: If the file cannot be read
        """
        validate_file_path(file_path)
        command = f"cat {shlex.quote(file_path)}"
        result = await self.executor.execute(command)
        if result.exit_status != 0:
            raise DockerCommandError(
                result.stderr.strip() or "Failed to read file",
                command=command,
                exit_status=result.exit_status,
                stderr=result.stderr,
            )
        return result.stdout

    async def write_project_file(self, file_path: str, content: str) -> None:
        """Replace a remote file's contents using a quoted heredoc.

        The heredoc delimiter is derived from the current time. Content that
        contains the delimiter on a line of its own would end the transfer
        early.

        Raises:
            ValidationError: If the path is unsafe (checked before any remote call)
            DockerCommandError: If the write fails
        """
        validate_file_path(file_path)
        delimiter = f"{HEREDOC_DELIMITER_PREFIX}{int(time.time() * 1000)}"
        if delimiter in content.splitlines():
            logger.warning("File content contains the heredoc delimiter", path=file_path)

        command = f"cat > {shlex.quote(file_path)} << '{delimiter}'\n{content}\n{delimiter}"
        result = await self.executor.execute(command)
        if result.exit_status != 0:
            raise DockerCommandError(
                result.stderr.strip() or "Failed to write file",
                command=f"cat > {file_path}",
                exit_status=result.exit_status,
                stderr=result.stderr,
            )
        logger.info("Wrote project file", path=file_path, size=len(content))
