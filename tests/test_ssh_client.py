"""Tests for the per-call SSH execution channel."""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest
from paramiko import AuthenticationException

from docker_remote.core.config_loader import ConnectionParameters
from docker_remote.core.exceptions import DockerCommandError, SSHConnectionError
from docker_remote.core.ssh_client import CancellationToken, ExecResult, RemoteExecutor


class FakeChannel:
    """Channel that serves scripted chunks, then reports EOF unless held open."""

    def __init__(self, stdout=(), stderr=(), exit_status=0, stay_open=False):
        self._stdout = list(stdout)
        self._stderr = list(stderr)
        self.exit_status = exit_status
        self.stay_open = stay_open
        self.closed = False
        self.exec_command = MagicMock()

    @property
    def eof_received(self):
        return not self.stay_open and not self._stdout and not self._stderr

    def recv_ready(self):
        return bool(self._stdout)

    def recv(self, size):
        return self._stdout.pop(0)

    def recv_stderr_ready(self):
        return bool(self._stderr)

    def recv_stderr(self, size):
        return self._stderr.pop(0)

    def recv_exit_status(self):
        return self.exit_status


class LateDataChannel(FakeChannel):
    """Final chunk and EOF arrive together, just after the first readiness check."""

    def __init__(self, late_chunk: bytes):
        super().__init__(stay_open=True)
        self._late_chunk: bytes | None = late_chunk
        self._eof = False

    @property
    def eof_received(self):
        return self._eof

    def recv_ready(self):
        if self._late_chunk is not None:
            self._stdout.append(self._late_chunk)
            self._late_chunk = None
            self._eof = True
            return False
        return bool(self._stdout)


@pytest.fixture
def params():
    return ConnectionParameters(host="vps.example.com", username="deploy", password="secret")


def make_client(channel: FakeChannel) -> MagicMock:
    client = MagicMock()
    transport = client.get_transport.return_value
    transport.is_active.return_value = True
    transport.open_session.return_value = channel

    def close():
        channel.closed = True

    client.close.side_effect = close
    return client


class TestExecResult:
    def test_ok(self):
        assert ExecResult.from_text("out").ok is True
        assert ExecResult.from_text("out", "warning").ok is True
        assert ExecResult.from_text("", "error").ok is False
        assert ExecResult.from_text("out", exit_status=1).ok is False
        assert ExecResult.from_text("out", exit_status=None).ok is False

    def test_raise_for_status_prefers_stderr(self):
        result = ExecResult.from_text("partial", "boom", exit_status=2)

        with pytest.raises(DockerCommandError, match="boom") as exc_info:
            result.raise_for_status("docker start x")
        assert exc_info.value.command == "docker start x"
        assert exc_info.value.exit_status == 2
        assert exc_info.value.stdout == "partial"

    def test_raise_for_status_falls_back_to_stdout(self):
        with pytest.raises(DockerCommandError, match="only stdout"):
            ExecResult.from_text("only stdout", exit_status=1).raise_for_status()

    def test_raise_for_status_passes(self):
        result = ExecResult.from_text("fine")

        assert result.raise_for_status() is result

    def test_undecodable_bytes(self):
        assert ExecResult(b"\xff ok", b"", 0).stdout == "\ufffd ok"


class TestCancellationToken:
    def test_callbacks_run_once(self):
        token = CancellationToken()
        callback = MagicMock()
        token.add_callback(callback)

        assert token.cancel("deadline") is True
        assert token.cancel("finished") is False
        assert callback.call_count == 1
        assert token.cancelled is True
        assert token.reason == "deadline"

    def test_late_callback_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        callback = MagicMock()

        token.add_callback(callback)

        callback.assert_called_once()

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        second = MagicMock()
        token.add_callback(MagicMock(side_effect=OSError("socket gone")))
        token.add_callback(second)

        token.cancel()

        second.assert_called_once()


class TestConnectKwargs:
    def test_password(self, params):
        kwargs = RemoteExecutor(params)._connect_kwargs()

        assert kwargs["hostname"] == "vps.example.com"
        assert kwargs["port"] == 22
        assert kwargs["password"] == "secret"
        assert kwargs["look_for_keys"] is False
        assert kwargs["allow_agent"] is False
        assert "pkey" not in kwargs

    def test_key_path_with_passphrase(self):
        params = ConnectionParameters(
            host="h", username="u", private_key_path="/keys/id_ed25519", passphrase="pw"
        )

        kwargs = RemoteExecutor(params)._connect_kwargs()

        assert kwargs["key_filename"] == "/keys/id_ed25519"
        assert kwargs["passphrase"] == "pw"
        assert "password" not in kwargs

    def test_invalid_key_material(self):
        params = ConnectionParameters(host="h", username="u", private_key="not a key")

        with pytest.raises(SSHConnectionError, match="Unable to load private key"):
            RemoteExecutor(params)._load_private_key()


class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_collects_output(self, params):
        channel = FakeChannel(stdout=[b"hello ", b"world\n"], stderr=[b"warn\n"], exit_status=0)
        client = make_client(channel)

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            result = await RemoteExecutor(params, poll_interval=0.001).execute("echo hello")

        assert result.stdout == "hello world\n"
        assert result.stderr == "warn\n"
        assert result.exit_status == 0
        channel.exec_command.assert_called_once_with("echo hello")
        client.connect.assert_called_once()
        client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_exit_status(self, params):
        client = make_client(FakeChannel(exit_status=-1))

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            result = await RemoteExecutor(params, poll_interval=0.001).execute("true")

        assert result.exit_status is None
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_not_a_connection_error(self, params):
        client = make_client(FakeChannel(stderr=[b"No such container"], exit_status=1))

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            result = await RemoteExecutor(params, poll_interval=0.001).execute("docker start x")

        assert result.exit_status == 1
        assert result.stderr == "No such container"

    @pytest.mark.asyncio
    async def test_authentication_failure(self, params):
        client = make_client(FakeChannel())
        client.connect.side_effect = AuthenticationException("Authentication failed.")

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            with pytest.raises(SSHConnectionError, match="Authentication failed") as exc_info:
                await RemoteExecutor(params).execute("docker ps")

        assert exc_info.value.timeout is None
        client.close.assert_called()

    @pytest.mark.asyncio
    async def test_network_failure(self, params):
        client = make_client(FakeChannel())
        client.connect.side_effect = OSError("Connection refused")

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            with pytest.raises(SSHConnectionError, match="Connection refused"):
                await RemoteExecutor(params).execute("docker ps")

    @pytest.mark.asyncio
    async def test_deadline_closes_transport(self, params):
        client = make_client(FakeChannel())
        client.connect.side_effect = lambda **kwargs: time.sleep(0.3)

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            started = time.monotonic()
            with pytest.raises(SSHConnectionError) as exc_info:
                await RemoteExecutor(params).execute("docker ps", timeout=0.05)
            elapsed = time.monotonic() - started

        assert exc_info.value.timeout == 0.05
        assert elapsed < 0.3
        client.close.assert_called()

    @pytest.mark.asyncio
    async def test_deadline_during_hanging_command(self, params):
        channel = FakeChannel(stay_open=True)
        client = make_client(channel)

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            with pytest.raises(SSHConnectionError) as exc_info:
                await RemoteExecutor(params, poll_interval=0.001).execute("sleep 60", timeout=0.05)

        assert exc_info.value.timeout == 0.05
        assert channel.closed is True

    @pytest.mark.asyncio
    async def test_output_arriving_with_eof_is_kept(self, params):
        client = make_client(LateDataChannel(b'{"ID":"abc"}\n'))

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            result = await RemoteExecutor(params, poll_interval=0.001).execute("docker ps")

        assert result.stdout == '{"ID":"abc"}\n'
        assert result.exit_status == 0


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_delivers_chunks_then_closes(self, params):
        client = make_client(FakeChannel(stdout=[b"line1\n", b"line2\n"]))
        received, errors, closes = [], [], []

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            handle = RemoteExecutor(params, poll_interval=0.001).stream(
                "docker logs -f web", received.append, errors.append, lambda: closes.append(1)
            )
            await asyncio.wait_for(handle.wait_closed(), timeout=2)

        assert received == [b"line1\n", b"line2\n"]
        assert errors == []
        assert closes == [1]
        assert handle.closed is True
        client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_stderr_is_non_terminal(self, params):
        client = make_client(FakeChannel(stdout=[b"out"], stderr=[b"warning"]))
        received, errors, closes = [], [], []

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            handle = RemoteExecutor(params, poll_interval=0.001).stream(
                "docker logs -f web", received.append, errors.append, lambda: closes.append(1)
            )
            await asyncio.wait_for(handle.wait_closed(), timeout=2)

        assert received == [b"out"]
        assert len(errors) == 1
        assert isinstance(errors[0], DockerCommandError)
        assert errors[0].stderr == "warning"
        assert closes == [1]

    @pytest.mark.asyncio
    async def test_consumer_close_is_idempotent(self, params):
        channel = FakeChannel(stay_open=True)
        client = make_client(channel)
        errors, closes = [], []

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            handle = RemoteExecutor(params, poll_interval=0.001).stream(
                "docker logs -f web", print, errors.append, lambda: closes.append(1)
            )
            for _ in range(100):
                if channel.exec_command.called:
                    break
                await asyncio.sleep(0.01)

            handle.close()
            handle.close()
            await asyncio.wait_for(handle.wait_closed(), timeout=2)
            handle.close()

        assert closes == [1]
        assert errors == []
        assert client.close.call_count == 1

    @pytest.mark.asyncio
    async def test_close_before_handshake(self, params):
        client = make_client(FakeChannel())
        errors, closes = [], []

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            handle = RemoteExecutor(params).stream(
                "docker logs -f web", print, errors.append, lambda: closes.append(1)
            )
            handle.close()
            await asyncio.wait_for(handle.wait_closed(), timeout=2)

        assert closes == [1]
        assert errors == []
        client.connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_connection_failure_reports_error_without_close(self, params):
        client = make_client(FakeChannel())
        client.connect.side_effect = OSError("No route to host")
        errors, closes = [], []

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            handle = RemoteExecutor(params).stream(
                "docker logs -f web", print, errors.append, lambda: closes.append(1)
            )
            await asyncio.wait_for(handle.wait_closed(), timeout=2)

        assert closes == []
        assert len(errors) == 1
        assert isinstance(errors[0], SSHConnectionError)
        assert "No route to host" in str(errors[0])

    @pytest.mark.asyncio
    async def test_handshake_deadline(self, params):
        client = make_client(FakeChannel())
        client.connect.side_effect = lambda **kwargs: time.sleep(0.3)
        errors, closes = [], []

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            handle = RemoteExecutor(params).stream(
                "docker logs -f web", print, errors.append, lambda: closes.append(1), timeout=0.05
            )
            await asyncio.wait_for(handle.wait_closed(), timeout=2)

        assert closes == []
        assert errors[0].timeout == 0.05
        client.close.assert_called()

    @pytest.mark.asyncio
    async def test_stream_keeps_output_arriving_with_eof(self, params):
        client = make_client(LateDataChannel(b"last line\n"))
        received, closes = [], []

        with patch("docker_remote.core.ssh_client.SSHClient", return_value=client):
            handle = RemoteExecutor(params, poll_interval=0.001).stream(
                "docker logs -f web", received.append, print, lambda: closes.append(1)
            )
            await asyncio.wait_for(handle.wait_closed(), timeout=2)

        assert received == [b"last line\n"]
        assert closes == [1]

    @pytest.mark.asyncio
    async def test_open_streams_do_not_block_execute(self, params):
        asyncio.get_running_loop().set_default_executor(ThreadPoolExecutor(max_workers=2))
        follow_channels = [FakeChannel(stay_open=True), FakeChannel(stay_open=True)]
        clients = [make_client(channel) for channel in follow_channels]
        clients.append(make_client(FakeChannel(stdout=[b"ok\n"])))
        executor = RemoteExecutor(params, poll_interval=0.001)

        with patch("docker_remote.core.ssh_client.SSHClient", side_effect=clients):
            handles = [
                executor.stream("docker logs -f web", print, print, lambda: None)
                for _ in follow_channels
            ]
            for _ in range(200):
                if all(channel.exec_command.called for channel in follow_channels):
                    break
                await asyncio.sleep(0.01)

            result = await executor.execute("echo ok", timeout=1)

            for handle in handles:
                handle.close()
            await asyncio.wait_for(
                asyncio.gather(*(handle.wait_closed() for handle in handles)), timeout=2
            )

        assert result.stdout == "ok\n"
