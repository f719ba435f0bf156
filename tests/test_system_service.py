"""Tests for the host overview."""

import pytest

from docker_remote.core.exceptions import DockerCommandError, SSHConnectionError
from docker_remote.services.system import SystemService


@pytest.mark.asyncio
async def test_overview(executor):
    executor.on("nproc", stdout="4\n")
    executor.on("cat /proc/loadavg", stdout="1.00 0.50 0.25 2/300 999\n")
    executor.on(
        "free -m",
        stdout=(
            "              total        used        free\n"
            "Mem:           2000        1000         500\n"
        ),
    )
    executor.on(
        "df -B1",
        stdout=(
            "Filesystem     1B-blocks       Used      Avail Use% Mounted on\n"
            "/dev/vda1    50000000000 20000000000 30000000000  40% /\n"
        ),
    )

    overview = await SystemService(executor).overview()

    assert overview.cores == 4
    assert overview.load == [1.0, 0.5, 0.25]
    assert overview.memory.used_percent == 50
    assert overview.disk[0].used_percent == 40
    assert len(executor.commands) == 4


@pytest.mark.asyncio
async def test_overview_probe_failure(executor):
    executor.on("free -m", stderr="free: command not found", exit_status=127)

    with pytest.raises(DockerCommandError, match="command not found"):
        await SystemService(executor).overview()


@pytest.mark.asyncio
async def test_check_connection(executor):
    executor.on("echo ssh-ok", stdout="ssh-ok\n")

    check = await SystemService(executor).check_connection()

    assert check.ok is True
    assert check.output == "ssh-ok"
    assert check.error is None
    assert executor.commands == ["echo ssh-ok"]


@pytest.mark.asyncio
async def test_check_connection_unreachable(executor):
    executor.fail("echo ssh-ok", SSHConnectionError("SSH connection to vps:22 failed: refused"))

    check = await SystemService(executor).check_connection()

    assert check.ok is False
    assert check.output is None
    assert "refused" in check.error


@pytest.mark.asyncio
async def test_check_connection_command_failure(executor):
    executor.on("echo ssh-ok", stderr="This account is currently not available.", exit_status=1)

    check = await SystemService(executor).check_connection()

    assert check.ok is False
    assert check.error == "This account is currently not available."
