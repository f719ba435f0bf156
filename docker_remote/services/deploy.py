"""
Deploy Service

Runs compose pipelines (`up -d`, `pull && up -d --force-recreate`) in a
project's working directory and classifies their outcome.
"""

import shlex

import structlog

from ..constants import COMPOSE_V1_COMMAND, COMPOSE_V2_COMMAND, DEPLOY_IDEMPOTENCY_MARKERS
from ..core.compose_manager import ComposeProjectResolver
from ..core.exceptions import NotFoundError
from ..core.settings import DEPLOY_TIMEOUT
from ..core.ssh_client import CommandExecutor, ExecResult
from ..core.validation import validate_file_path
from ..models.project import DeployResult


def classify_deploy(exit_status: int | None, output: str) -> bool:
    """`up -d` succeeded: exit 0, or a nonzero exit whose output shows a no-op.

    Some compose versions exit nonzero when nothing changed; their output
    then carries one of DEPLOY_IDEMPOTENCY_MARKERS.
    """
    if exit_status == 0:
        return True
    return any(marker in output for marker in DEPLOY_IDEMPOTENCY_MARKERS)


def classify_redeploy(exit_status: int | None) -> bool:
    """Pull + recreate succeeded only on exit 0; a failed pull is never a success."""
    return exit_status == 0


def _combined_output(result: ExecResult) -> str:
    return result.stdout + result.stderr


class DeployOrchestrator:
    """Composes and runs deploy pipelines for compose projects."""

    def __init__(
        self,
        executor: CommandExecutor,
        resolver: ComposeProjectResolver | None = None,
        timeout: float = DEPLOY_TIMEOUT,
    ):
        self.executor = executor
        self.resolver = resolver or ComposeProjectResolver(executor)
        self.timeout = timeout
        self.logger = structlog.get_logger()

    async def get_compose_command(self) -> str:
        """Detect the compose CLI: ``docker compose`` (v2) or ``docker-compose`` (v1).

        Probed on every call.
        """
        result = await self.executor.execute(f"{COMPOSE_V2_COMMAND} version 2>/dev/null")
        if result.exit_status == 0:
            return COMPOSE_V2_COMMAND
        return COMPOSE_V1_COMMAND

    async def deploy(self, project_path: str) -> DeployResult:
        """Bring a project up in detached mode.

        Args:
            project_path: Absolute project working directory

        Returns:
            DeployResult with combined output and the idempotency-aware outcome
        """
        validate_file_path(project_path)
        compose = await self.get_compose_command()
        command = f"cd {shlex.quote(project_path)} && {compose} up -d 2>&1"

        result = await self.executor.execute(command, timeout=self.timeout)
        output = _combined_output(result)
        success = classify_deploy(result.exit_status, output)
        self._log_outcome("deploy", project_path, result, success)
        return DeployResult(
            command=command, output=output, success=success, exit_status=result.exit_status
        )

    async def redeploy(self, project_path: str) -> DeployResult:
        """Pull images, then recreate containers only if the pull succeeded.

        Args:
            project_path: Absolute project working directory

        Returns:
            DeployResult; success strictly means exit status 0
        """
        validate_file_path(project_path)
        compose = await self.get_compose_command()
        command = (
            f"cd {shlex.quote(project_path)} && {compose} pull 2>&1 "
            f"&& {compose} up -d --force-recreate 2>&1"
        )

        result = await self.executor.execute(command, timeout=self.timeout)
        output = _combined_output(result)
        success = classify_redeploy(result.exit_status)
        self._log_outcome("redeploy", project_path, result, success)
        return DeployResult(
            command=command, output=output, success=success, exit_status=result.exit_status
        )

    async def deploy_project(self, project_name: str) -> DeployResult:
        """Resolve a compose project's directory and deploy it.

        Raises:
            NotFoundError: If the project has no resolvable working directory
        """
        return await self.deploy(await self._resolve_path(project_name))

    async def redeploy_project(self, project_name: str) -> DeployResult:
        """Resolve a compose project's directory and redeploy it.

        Raises:
            NotFoundError: If the project has no resolvable working directory
        """
        return await self.redeploy(await self._resolve_path(project_name))

    async def _resolve_path(self, project_name: str) -> str:
        project_path = await self.resolver.find_compose_project_path(project_name)
        if not project_path:
            raise NotFoundError(f"Compose project '{project_name}' not found")
        return project_path

    def _log_outcome(
        self, operation: str, project_path: str, result: ExecResult, success: bool
    ) -> None:
        if success:
            self.logger.info(
                f"Project {operation} succeeded",
                path=project_path,
                exit_status=result.exit_status,
            )
        else:
            self.logger.error(
                f"Project {operation} failed",
                path=project_path,
                exit_status=result.exit_status,
                output=_combined_output(result)[-500:],
            )
