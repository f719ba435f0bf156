"""Core exceptions for remote docker operations."""


class DockerRemoteError(Exception):
    """Base exception for remote docker operations."""


class SSHConnectionError(DockerRemoteError):
    """SSH handshake, network failure or deadline exceeded."""

    def __init__(self, message: str, timeout: float | None = None):
        super().__init__(message)
        self.timeout = timeout


class DockerCommandError(DockerRemoteError):
    """Remote command reported failure after a successful connection."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        exit_status: int | None = None,
        stderr: str = "",
        stdout: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        self.stdout = stdout


class ValidationError(DockerRemoteError):
    """Local precondition failed; raised before any remote call."""


class NotFoundError(DockerRemoteError):
    """Well-formed request referencing a project or directory that does not resolve."""


class ParseError(DockerRemoteError):
    """A unit of structured output could not be decoded.

    Never raised out of the decoders; it travels inside a ``Decoded`` result
    and the offending line is dropped.
    """

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class ConfigurationError(DockerRemoteError):
    """Configuration validation or loading failed."""
