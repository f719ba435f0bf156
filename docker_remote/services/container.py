"""
Container Service

Inventory, statistics, inspection, lifecycle, logs and resource limits for
containers on the remote docker host.
"""

import shlex
from collections.abc import Callable
from typing import Any

import structlog

from ..constants import (
    DOCKER_INSPECT_RUNNING,
    DOCKER_NO_SUCH_MARKER,
    DOCKER_PS_JSON,
    DOCKER_STATS_JSON,
)
from ..core.exceptions import ValidationError
from ..core.parsers import parse_inspect, parse_inventory, parse_stats
from ..core.ssh_client import CommandExecutor, StreamHandle
from ..core.validation import clamp_log_lines, sanitize_container_id, validate_resource_limits
from ..models.container import (
    ContainerActionLiteral,
    ContainerInspect,
    ContainerRecord,
    ContainerStats,
    ResourceUpdateResult,
)


class ContainerService:
    """Service for container operations over the remote execution channel."""

    def __init__(self, executor: CommandExecutor):
        self.executor = executor
        self.logger = structlog.get_logger()

    async def list_containers(self) -> list[ContainerRecord]:
        """List all containers, running or not."""
        result = await self.executor.execute(DOCKER_PS_JSON)
        result.raise_for_status(DOCKER_PS_JSON)
        containers = parse_inventory(result.stdout)
        self.logger.debug("Listed containers", total=len(containers))
        return containers

    async def get_stats(self, container_ids: list[str]) -> list[ContainerStats]:
        """Point-in-time CPU and memory statistics for the given containers."""
        if not container_ids:
            return []
        safe_ids = [sanitize_container_id(container_id) for container_id in container_ids]
        command = f"{DOCKER_STATS_JSON} {' '.join(safe_ids)}"
        result = await self.executor.execute(command)
        result.raise_for_status(command)
        return parse_stats(result.stdout)

    async def get_all_stats(self) -> list[ContainerStats]:
        """Statistics for every running container."""
        containers = await self.list_containers()
        running_ids = [container.id for container in containers if container.is_running]
        return await self.get_stats(running_ids)

    async def get_container_stats(self, container_id: str) -> ContainerStats | None:
        """Statistics for one container, or None when it is not running.

        An id docker does not know (e.g. a container removed since the last
        listing) also yields None; any other inspect failure is raised.
        """
        safe_id = sanitize_container_id(container_id)
        command = DOCKER_INSPECT_RUNNING.format(safe_id)
        state = await self.executor.execute(command)
        if state.exit_status != 0 and DOCKER_NO_SUCH_MARKER in state.stderr:
            self.logger.debug("Container not found, no stats", container_id=safe_id)
            return None
        state.raise_for_status(command)
        if state.stdout.strip() != "true":
            self.logger.debug("Container not running, no stats", container_id=safe_id)
            return None
        stats = await self.get_stats([safe_id])
        return stats[0] if stats else None

    async def inspect_container(self, container_id: str) -> ContainerInspect:
        """Environment variables and resource limits of a container."""
        safe_id = sanitize_container_id(container_id)
        command = f"docker inspect {safe_id}"
        result = await self.executor.execute(command)
        result.raise_for_status(command)
        return parse_inspect(result.stdout)

    async def start_container(self, container_id: str) -> str:
        return await self.manage_container(container_id, "start")

    async def stop_container(self, container_id: str) -> str:
        return await self.manage_container(container_id, "stop")

    async def restart_container(self, container_id: str) -> str:
        return await self.manage_container(container_id, "restart")

    async def manage_container(self, container_id: str, action: ContainerActionLiteral) -> str:
        """Run a lifecycle action and return docker's trimmed output.

        Raises:
            ValidationError: If the container id or action is invalid
            DockerCommandError: If docker reports a failure
        """
        if action not in ("start", "stop", "restart"):
            raise ValidationError(f"Invalid action '{action}'. Valid actions: start, stop, restart")
        safe_id = sanitize_container_id(container_id)
        command = f"docker {action} {safe_id}"
        result = await self.executor.execute(command)
        result.raise_for_status(command)
        self.logger.info("Container action completed", action=action, container_id=safe_id)
        return result.stdout.strip()

    async def tail_logs(self, container_id: str, lines: int | None = None) -> str:
        """Fetch the last ``lines`` log lines (stdout and stderr interleaved)."""
        safe_id = sanitize_container_id(container_id)
        safe_lines = clamp_log_lines(lines)
        command = f"docker logs --tail {safe_lines} {safe_id} 2>&1"
        result = await self.executor.execute(command)
        result.raise_for_status(command)
        return result.stdout

    def stream_logs(
        self,
        container_id: str,
        on_data: Callable[[bytes], Any],
        on_error: Callable[[Exception], Any],
        on_close: Callable[[], Any],
        lines: int | None = None,
    ) -> StreamHandle:
        """Follow a container's logs until the returned handle is closed."""
        safe_id = sanitize_container_id(container_id)
        safe_lines = clamp_log_lines(lines)
        command = f"docker logs --tail {safe_lines} -f {safe_id} 2>&1"
        self.logger.info("Starting log stream", container_id=safe_id, lines=safe_lines)
        return self.executor.stream(command, on_data, on_error, on_close)

    async def update_resources(
        self, container_id: str, cpus: str | None = None, memory: str | None = None
    ) -> ResourceUpdateResult:
        """Apply ``--cpus`` and/or ``--memory`` to a container.

        Raises:
            ValidationError: If both limits are omitted or either is malformed
            DockerCommandError: If docker rejects the update
        """
        safe_id = sanitize_container_id(container_id)
        flags = validate_resource_limits(cpus, memory)
        command = f"docker update {' '.join(shlex.quote(flag) for flag in flags)} {safe_id}"
        result = await self.executor.execute(command)
        result.raise_for_status(command)
        self.logger.info("Updated container resources", container_id=safe_id, flags=flags)
        return ResourceUpdateResult(
            container_id=safe_id, command=command, output=result.stdout.strip()
        )
