"""
System Service

Host-level overview (cores, load, memory, disks) of the docker host and a
connectivity check.
"""

import asyncio

import structlog

from ..constants import (
    CONNECTION_TEST_COMMAND,
    HOST_CORES_COMMAND,
    HOST_DISK_COMMAND,
    HOST_LOAD_COMMAND,
    HOST_MEMORY_COMMAND,
)
from ..core.exceptions import SSHConnectionError
from ..core.parsers import parse_cores, parse_disk_usage, parse_load, parse_memory_info
from ..core.ssh_client import CommandExecutor
from ..models.system import ConnectionCheck, SystemOverview


class SystemService:
    """Service for host overview queries."""

    def __init__(self, executor: CommandExecutor):
        self.executor = executor
        self.logger = structlog.get_logger()

    async def _run(self, command: str) -> str:
        result = await self.executor.execute(command)
        result.raise_for_status(command)
        return result.stdout

    async def overview(self) -> SystemOverview:
        """Collect a point-in-time host snapshot.

        The four probes run concurrently, each on its own connection.

        Raises:
            DockerCommandError: If any probe fails
        """
        cores, load, memory, disk = await asyncio.gather(
            self._run(HOST_CORES_COMMAND),
            self._run(HOST_LOAD_COMMAND),
            self._run(HOST_MEMORY_COMMAND),
            self._run(HOST_DISK_COMMAND),
        )
        overview = SystemOverview(
            cores=parse_cores(cores),
            load=parse_load(load),
            memory=parse_memory_info(memory),
            disk=parse_disk_usage(disk),
        )
        self.logger.debug("Collected host overview", cores=overview.cores, disks=len(overview.disk))
        return overview

    async def check_connection(self) -> ConnectionCheck:
        """Run a trivial command to prove the host is reachable and authenticates.

        Connection failures are reported in the result instead of raised.
        """
        try:
            result = await self.executor.execute(CONNECTION_TEST_COMMAND)
        except SSHConnectionError as e:
            self.logger.warning("Connection check failed", error=str(e))
            return ConnectionCheck(ok=False, error=str(e))

        if not result.ok:
            message = result.stderr.strip() or f"Command exited with status {result.exit_status}"
            self.logger.warning("Connection check command failed", error=message)
            return ConnectionCheck(ok=False, output=result.stdout.strip() or None, error=message)

        self.logger.info("Connection check succeeded")
        return ConnectionCheck(ok=True, output=result.stdout.strip())
