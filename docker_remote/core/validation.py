"""Local input validation, applied before any remote command is issued."""

import re

import structlog

from .exceptions import ValidationError
from .settings import DEFAULT_LOG_LINES, MAX_CPU_LIMIT, MAX_LOG_LINES

logger = structlog.get_logger()

# Hex ids and container names: letters, digits, underscore, hyphen, dot
CONTAINER_ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")
CPU_LIMIT_PATTERN = re.compile(r"^(\d+(\.\d*)?|\.\d+)$")
MEMORY_LIMIT_PATTERN = re.compile(r"^\d+[kmgKMG]?$")


def sanitize_container_id(container_id: str) -> str:
    """Return ``container_id`` unchanged if it is safe to embed in a shell command.

    Raises:
        ValidationError: If the identifier contains anything but ``[A-Za-z0-9_.-]``
    """
    if not isinstance(container_id, str) or not CONTAINER_ID_PATTERN.match(container_id):
        raise ValidationError(f"Invalid container ID: {container_id!r}")
    return container_id


def is_path_safe(file_path: str) -> bool:
    """Check a remote path: absolute, no ``..`` and no ``//``."""
    if not isinstance(file_path, str):
        return False
    if ".." in file_path or "//" in file_path:
        return False
    return file_path.startswith("/")


def validate_file_path(file_path: str) -> str:
    """Return ``file_path`` if it is safe for a remote read or write.

    Raises:
        ValidationError: If the path is relative or contains ``..`` or ``//``
    """
    if not is_path_safe(file_path):
        logger.warning("Rejected unsafe file path", path=file_path)
        raise ValidationError(f"Invalid file path: {file_path!r}")
    return file_path


def validate_resource_limits(cpus: str | None = None, memory: str | None = None) -> list[str]:
    """Validate resource limits and build the matching `docker update` flags.

    Args:
        cpus: Positive decimal CPU count, at most 128
        memory: Digits optionally followed by one of k/m/g (any case)

    Returns:
        Flags such as ``["--cpus=1.5", "--memory=512m"]``

    Raises:
        ValidationError: If a value is malformed or both are omitted
    """
    flags: list[str] = []

    if cpus is not None and str(cpus).strip() != "":
        cpu_text = str(cpus).strip()
        if not CPU_LIMIT_PATTERN.match(cpu_text):
            raise ValidationError(f"Invalid CPU limit: {cpus!r}")
        cpu_value = float(cpu_text)
        if cpu_value <= 0 or cpu_value > MAX_CPU_LIMIT:
            raise ValidationError(
                f"Invalid CPU limit: {cpus!r} (must be > 0 and <= {MAX_CPU_LIMIT:g})"
            )
        flags.append(f"--cpus={cpu_value:g}")

    if memory is not None and str(memory).strip() != "":
        memory_text = str(memory).strip()
        if not MEMORY_LIMIT_PATTERN.match(memory_text):
            raise ValidationError(f"Invalid memory limit: {memory!r}")
        flags.append(f"--memory={memory_text}")

    if not flags:
        raise ValidationError("No resource limits provided")
    return flags


def clamp_log_lines(lines: int | str | None, default: int = DEFAULT_LOG_LINES) -> int:
    """Clamp a requested log tail length to ``[1, MAX_LOG_LINES]``."""
    if lines is None:
        return default
    try:
        value = int(float(lines))
    except (TypeError, ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid log line count: {lines!r}") from e
    return max(1, min(MAX_LOG_LINES, value))


def validate_project_name(project_name: str) -> str:
    """Return a compose project name if it is safe to embed in a label filter.

    Raises:
        ValidationError: If the name is empty or has characters outside ``[A-Za-z0-9_.-]``
    """
    if not isinstance(project_name, str) or not CONTAINER_ID_PATTERN.match(project_name):
        raise ValidationError(f"Invalid project name: {project_name!r}")
    return project_name
