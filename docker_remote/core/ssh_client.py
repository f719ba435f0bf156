"""Per-call SSH execution channel for remote docker commands.

Every ``execute`` or ``stream`` call opens its own authenticated paramiko
transport and tears it down when the command ends. Blocking paramiko work
runs on a thread of its own per call, so long-lived streams never hold
workers of the shared executor. A ``CancellationToken`` owns the transport
close so that the deadline race, stream shutdown and normal completion all
release it exactly once.
"""

import asyncio
import io
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from paramiko import AutoAddPolicy, Channel, ECDSAKey, Ed25519Key, PKey, RSAKey, SSHClient
from paramiko.ssh_exception import SSHException

from ..constants import LOG_COMMAND_PREVIEW_CHARS
from .config_loader import ConnectionParameters
from .exceptions import DockerCommandError, SSHConnectionError
from .settings import CHANNEL_READ_SIZE, POLL_INTERVAL

logger = structlog.get_logger()

_KEY_CLASSES: tuple[type[PKey], ...] = (Ed25519Key, ECDSAKey, RSAKey)

# Errors raised by paramiko and the socket layer during handshake or I/O
_TRANSPORT_ERRORS = (SSHException, OSError, EOFError)

CANCEL_DEADLINE = "deadline"
CANCEL_CONSUMER = "closed by consumer"
CANCEL_FINISHED = "finished"


def _preview(command: str) -> str:
    return command[:LOG_COMMAND_PREVIEW_CHARS]


def _in_thread(func: Callable[..., Any], *args: Any) -> "asyncio.Future[Any]":
    """Run a blocking call on a dedicated daemon thread and return a loop future.

    Unlike ``run_in_executor`` the call never waits for a pool worker, so any
    number of calls can be in flight at once. Must be called from a running
    event loop.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()

    def settle(result: Any = None, error: BaseException | None = None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def runner() -> None:
        try:
            result = func(*args)
        except BaseException as e:
            outcome: dict[str, Any] = {"error": e}
        else:
            outcome = {"result": result}
        try:
            loop.call_soon_threadsafe(lambda: settle(**outcome))
        except RuntimeError:
            # Event loop already closed; nobody is waiting for the outcome
            logger.debug("Discarded SSH call outcome after loop shutdown")

    threading.Thread(target=runner, name=f"ssh-{func.__name__}", daemon=True).start()
    return future


@dataclass(frozen=True)
class ExecResult:
    """Captured output of one completed remote command."""

    stdout_bytes: bytes
    stderr_bytes: bytes
    exit_status: int | None

    @classmethod
    def from_text(
        cls, stdout: str = "", stderr: str = "", exit_status: int | None = 0
    ) -> "ExecResult":
        return cls(stdout.encode("utf-8"), stderr.encode("utf-8"), exit_status)

    @property
    def stdout(self) -> str:
        return self.stdout_bytes.decode("utf-8", errors="replace")

    @property
    def stderr(self) -> str:
        return self.stderr_bytes.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        """False on nonzero/absent exit status, or stderr with no stdout."""
        if self.exit_status != 0:
            return False
        return not (self.stderr.strip() and not self.stdout.strip())

    def raise_for_status(self, command: str | None = None) -> "ExecResult":
        """Raise DockerCommandError unless the command succeeded.

        The message is the captured stderr, or stdout when stderr is empty.
        """
        if self.ok:
            return self
        message = (
            self.stderr.strip()
            or self.stdout.strip()
            or f"Command exited with status {self.exit_status}"
        )
        raise DockerCommandError(
            message,
            command=command,
            exit_status=self.exit_status,
            stderr=self.stderr,
            stdout=self.stdout,
        )


class CancellationToken:
    """Thread-safe, one-shot cancellation signal.

    Callbacks registered before cancellation run exactly once, on the thread
    that cancels. Callbacks registered afterwards run immediately.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], Any]] = []
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, callback: Callable[[], Any]) -> None:
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        self._run(callback)

    def cancel(self, reason: str = CANCEL_CONSUMER) -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            self.reason = reason
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._run(callback)
        return True

    @staticmethod
    def _run(callback: Callable[[], Any]) -> None:
        try:
            callback()
        except Exception as e:
            logger.warning("Cancellation callback failed", error=str(e))


class StreamHandle:
    """Open subscription to a long-running remote command's output.

    Owns the transport until closed by the consumer or by remote
    termination. ``close()`` is idempotent.
    """

    def __init__(self, token: CancellationToken):
        self._token = token
        self._done = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._token.cancelled

    def close(self) -> None:
        """Tear down the transport; safe to call any number of times."""
        if self._token.cancel(CANCEL_CONSUMER):
            logger.debug("Stream closed by consumer")

    async def wait_closed(self) -> None:
        """Wait until the stream has fully terminated and callbacks have fired."""
        await self._done.wait()

    def _finish(self) -> None:
        self._done.set()


class CommandExecutor(Protocol):
    """Anything that can run a remote command and stream its output."""

    async def execute(self, command: str, timeout: float | None = None) -> ExecResult: ...

    def stream(
        self,
        command: str,
        on_data: Callable[[bytes], Any],
        on_error: Callable[[Exception], Any],
        on_close: Callable[[], Any],
        timeout: float | None = None,
    ) -> StreamHandle: ...


class RemoteExecutor:
    """Runs docker CLI commands on the remote host over a fresh SSH transport per call."""

    def __init__(self, params: ConnectionParameters, poll_interval: float = POLL_INTERVAL):
        self.params = params
        self.poll_interval = poll_interval

    # Connection handling

    def _connect_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "hostname": self.params.host,
            "port": self.params.port,
            "username": self.params.username,
            "timeout": self.params.timeout,
            "banner_timeout": self.params.timeout,
            "auth_timeout": self.params.timeout,
            "look_for_keys": False,
            "allow_agent": False,
        }
        if self.params.private_key:
            kwargs["pkey"] = self._load_private_key()
        elif self.params.private_key_path:
            kwargs["key_filename"] = self.params.private_key_path
            if self.params.passphrase:
                kwargs["passphrase"] = self.params.passphrase
        if self.params.password:
            kwargs["password"] = self.params.password
        return kwargs

    def _load_private_key(self) -> PKey:
        """Parse in-memory key material, trying each supported key type."""
        last_error: Exception | None = None
        for key_class in _KEY_CLASSES:
            try:
                return key_class.from_private_key(
                    io.StringIO(self.params.private_key or ""),
                    password=self.params.passphrase,
                )
            except (SSHException, ValueError) as e:
                last_error = e
        raise SSHConnectionError(f"Unable to load private key: {last_error}")

    def _open_channel(self, command: str, token: CancellationToken) -> Channel:
        """Connect, authenticate and start ``command``. Blocking."""
        if token.cancelled:
            raise SSHConnectionError(f"SSH call {token.reason} before handshake")
        client = SSHClient()
        client.set_missing_host_key_policy(AutoAddPolicy())
        token.add_callback(client.close)

        client.connect(**self._connect_kwargs())
        if token.cancelled:
            client.close()
            raise SSHConnectionError(f"SSH call {token.reason} during handshake")

        transport = client.get_transport()
        if transport is None or not transport.is_active():
            raise SSHConnectionError(f"SSH transport to {self.params.address} is not active")

        channel = transport.open_session(timeout=self.params.timeout)
        channel.exec_command(command)
        return channel

    # Execute

    async def execute(self, command: str, timeout: float | None = None) -> ExecResult:
        """Run ``command`` to completion and capture its output.

        Args:
            command: Shell command to run on the remote host
            timeout: Deadline in seconds; defaults to the configured timeout

        Returns:
            ExecResult with stdout, stderr and exit status

        Raises:
            SSHConnectionError: On authentication failure, network error or timeout
        """
        deadline = timeout or self.params.timeout
        token = CancellationToken()
        started = time.monotonic()

        logger.debug("Executing SSH command", host=self.params.address, command=_preview(command))

        work = _in_thread(self._run_to_completion, command, token)
        try:
            result = await asyncio.wait_for(work, timeout=deadline)
        except asyncio.TimeoutError as e:
            token.cancel(CANCEL_DEADLINE)
            logger.warning(
                "SSH command timed out",
                host=self.params.address,
                command=_preview(command),
                timeout=deadline,
            )
            raise SSHConnectionError(
                f"SSH command timed out after {deadline}s", timeout=deadline
            ) from e
        except _TRANSPORT_ERRORS as e:
            logger.error(
                "SSH command failed",
                host=self.params.address,
                command=_preview(command),
                error=str(e),
            )
            raise SSHConnectionError(f"SSH connection to {self.params.address} failed: {e}") from e
        finally:
            token.cancel(CANCEL_FINISHED)

        logger.debug(
            "Executed SSH command",
            host=self.params.address,
            command=_preview(command),
            exit_status=result.exit_status,
            duration=round(time.monotonic() - started, 3),
        )
        return result

    def _run_to_completion(self, command: str, token: CancellationToken) -> ExecResult:
        channel = self._open_channel(command, token)
        stdout = bytearray()
        stderr = bytearray()
        self._poll(channel, token, stdout.extend, stderr.extend)
        status = channel.recv_exit_status()
        if token.cancelled:
            raise SSHConnectionError(f"SSH command {token.reason}")
        return ExecResult(bytes(stdout), bytes(stderr), None if status == -1 else status)

    # Stream

    def stream(
        self,
        command: str,
        on_data: Callable[[bytes], Any],
        on_error: Callable[[Exception], Any],
        on_close: Callable[[], Any],
        timeout: float | None = None,
    ) -> StreamHandle:
        """Start ``command`` and push its output to callbacks as it arrives.

        Must be called from a running event loop. The deadline covers the
        handshake and command start only. Callbacks run on the event loop.

        Args:
            command: Long-running shell command (e.g. a following log tail)
            on_data: Receives each stdout chunk
            on_error: Receives connection errors (terminal) and stderr
                chunks wrapped in DockerCommandError (non-terminal)
            on_close: Called once when the stream ends without an error
            timeout: Handshake deadline in seconds

        Returns:
            StreamHandle owning the transport
        """
        loop = asyncio.get_running_loop()
        token = CancellationToken()
        handle = StreamHandle(token)
        handle._task = loop.create_task(
            self._run_stream(command, token, handle, on_data, on_error, on_close, timeout)
        )
        return handle

    async def _run_stream(
        self,
        command: str,
        token: CancellationToken,
        handle: StreamHandle,
        on_data: Callable[[bytes], Any],
        on_error: Callable[[Exception], Any],
        on_close: Callable[[], Any],
        timeout: float | None,
    ) -> None:
        deadline = timeout or self.params.timeout
        loop = asyncio.get_running_loop()
        logger.debug("Opening SSH stream", host=self.params.address, command=_preview(command))

        try:
            try:
                channel = await asyncio.wait_for(
                    _in_thread(self._open_channel, command, token),
                    timeout=deadline,
                )
            except asyncio.TimeoutError:
                token.cancel(CANCEL_DEADLINE)
                on_error(
                    SSHConnectionError(f"SSH stream timed out after {deadline}s", timeout=deadline)
                )
                return
            except (*_TRANSPORT_ERRORS, SSHConnectionError) as e:
                if token.reason == CANCEL_CONSUMER:
                    on_close()
                    return
                token.cancel(CANCEL_FINISHED)
                logger.error("SSH stream failed to open", host=self.params.address, error=str(e))
                on_error(e if isinstance(e, SSHConnectionError) else SSHConnectionError(str(e)))
                return

            def emit_data(chunk: bytes) -> None:
                loop.call_soon_threadsafe(on_data, chunk)

            def emit_stderr(chunk: bytes) -> None:
                text = chunk.decode("utf-8", errors="replace")
                error = DockerCommandError(text, command=command, stderr=text)
                loop.call_soon_threadsafe(on_error, error)

            try:
                await _in_thread(self._poll, channel, token, emit_data, emit_stderr)
            except _TRANSPORT_ERRORS as e:
                if token.reason != CANCEL_CONSUMER:
                    token.cancel(CANCEL_FINISHED)
                    on_error(SSHConnectionError(f"SSH stream interrupted: {e}"))
                    return

            token.cancel(CANCEL_FINISHED)
            logger.debug("SSH stream closed", host=self.params.address, command=_preview(command))
            on_close()
        finally:
            handle._finish()

    @staticmethod
    def _read_available(
        channel: Channel,
        on_stdout: Callable[[bytes], Any],
        on_stderr: Callable[[bytes], Any],
    ) -> bool:
        """Read one chunk from each buffered stream. True if anything was ready."""
        progressed = False
        if channel.recv_ready():
            chunk = channel.recv(CHANNEL_READ_SIZE)
            if chunk:
                on_stdout(chunk)
            progressed = True
        if channel.recv_stderr_ready():
            chunk = channel.recv_stderr(CHANNEL_READ_SIZE)
            if chunk:
                on_stderr(chunk)
            progressed = True
        return progressed

    def _poll(
        self,
        channel: Channel,
        token: CancellationToken,
        on_stdout: Callable[[bytes], Any],
        on_stderr: Callable[[bytes], Any],
    ) -> None:
        """Forward channel output until EOF or cancellation. Blocking."""
        while not token.cancelled:
            if self._read_available(channel, on_stdout, on_stderr):
                continue
            if channel.eof_received or channel.closed:
                # The final packets can land between the ready checks and EOF
                while not token.cancelled and self._read_available(
                    channel, on_stdout, on_stderr
                ):
                    pass
                return
            time.sleep(self.poll_interval)
