"""Decoders for docker CLI and host command output.

Pure functions, no I/O. Each line-oriented decoder yields a ``Decoded``
value tagged with either a record or a ``ParseError``; the ``parse_*``
wrappers keep the records and drop (and log) the failures, so malformed
or partial output degrades the result instead of failing the call.
"""

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from ..constants import DOCKER_COMPOSE_PROJECT
from ..models.container import (
    ContainerInspect,
    ContainerRecord,
    ContainerStats,
    EnvVar,
    ResourceLimits,
)
from ..models.system import DiskUsage, MemoryInfo
from .exceptions import ParseError

logger = structlog.get_logger()

T = TypeVar("T")

SIZE_PATTERN = re.compile(r"^([\d.]+)\s*([kKmMgGtT]?)(i?)[bB]?$")

_DECIMAL_EXPONENTS = {"": 0, "K": 1, "M": 2, "G": 3, "T": 4}

_MEMORY_LIMIT_UNITS = (("g", 1024**3), ("m", 1024**2), ("k", 1024))


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """Tagged result of decoding one unit of command output."""

    value: T | None = None
    error: ParseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Decoded[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, message: str, raw: str = "") -> "Decoded[T]":
        return cls(error=ParseError(message, raw=raw))


def iter_lines(text: str) -> Iterator[str]:
    """Yield non-blank, stripped lines."""
    for line in (text or "").splitlines():
        line = line.strip()
        if line:
            yield line


def decode_json_object(line: str) -> Decoded[dict[str, Any]]:
    """Decode one ``{{json .}}`` line into a dict."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        return Decoded.failure(f"Invalid JSON: {e}", raw=line)
    if not isinstance(data, dict):
        return Decoded.failure("Expected a JSON object", raw=line)
    return Decoded.success(data)


def _collect(decoded: Iterator[Decoded[T]], kind: str) -> list[T]:
    records: list[T] = []
    dropped = 0
    for item in decoded:
        if item.ok and item.value is not None:
            records.append(item.value)
        else:
            dropped += 1
            logger.debug(
                "Dropped undecodable output line",
                kind=kind,
                error=str(item.error),
                raw=item.error.raw[:200] if item.error else "",
            )
    if dropped:
        logger.info("Some output lines could not be decoded", kind=kind, dropped=dropped)
    return records


# Inventory


def parse_labels(labels_data: Any) -> dict[str, str]:
    """Parse Docker labels that can be a dict or comma-separated string."""
    if isinstance(labels_data, dict):
        return {str(k): str(v) for k, v in labels_data.items()}
    labels: dict[str, str] = {}
    if isinstance(labels_data, str) and labels_data:
        for item in labels_data.split(","):
            if "=" in item:
                key, value = item.split("=", 1)
                labels[key.strip()] = value.strip()
    return labels


def decode_inventory_line(line: str) -> Decoded[ContainerRecord]:
    """Decode one ``docker ps --format '{{json .}}'`` line."""
    parsed = decode_json_object(line)
    if not parsed.ok or parsed.value is None:
        return Decoded(error=parsed.error)
    row = parsed.value

    container_id = row.get("ID")
    if not container_id or not isinstance(container_id, str):
        return Decoded.failure("Missing container ID", raw=line)

    labels = parse_labels(row.get("Labels"))
    return Decoded.success(
        ContainerRecord(
            id=container_id,
            name=str(row.get("Names") or ""),
            image=str(row.get("Image") or ""),
            state=str(row.get("State") or ""),
            status=str(row.get("Status") or ""),
            ports=row.get("Ports") or None,
            created_at=row.get("CreatedAt") or None,
            labels=labels,
            compose_project=labels.get(DOCKER_COMPOSE_PROJECT) or None,
        )
    )


def parse_inventory(text: str) -> list[ContainerRecord]:
    """Decode container inventory, one JSON object per line.

    Malformed lines are dropped. The first occurrence of an id wins so ids
    stay unique within the snapshot.
    """
    records = _collect((decode_inventory_line(line) for line in iter_lines(text)), "inventory")
    unique: dict[str, ContainerRecord] = {}
    for record in records:
        unique.setdefault(record.id, record)
    return list(unique.values())


# Stats


def parse_percentage(perc_str: str | None) -> float | None:
    """Parse percentage string like '50.5%'.

    Examples:
        >>> parse_percentage("12.50%")
        12.5
        >>> parse_percentage("--")
    """
    if not perc_str:
        return None
    try:
        return float(str(perc_str).strip().rstrip("%"))
    except ValueError:
        return None


def parse_size(size_str: str | None) -> int | None:
    """Parse a docker size string like '256MiB' or '1.2kB' to bytes.

    Binary units (``Ki``, ``Mi``, ``Gi``, ``Ti``) are powers of 1024, decimal
    units powers of 1000. Unparseable input yields None.
    """
    if not size_str:
        return None
    match = SIZE_PATTERN.match(size_str.strip())
    if not match:
        return None
    number, unit, binary = match.groups()
    try:
        value = float(number)
    except ValueError:
        return None
    exponent = _DECIMAL_EXPONENTS[unit.upper()]
    base = 1024 if binary else 1000
    return round(value * base**exponent)


def parse_memory_usage(mem_str: str | None) -> tuple[int | None, int | None]:
    """Parse a combined usage string like '256MiB / 512MiB' into (used, limit)."""
    if not mem_str:
        return None, None
    parts = mem_str.split("/")
    if len(parts) != 2:
        return None, None
    return parse_size(parts[0]), parse_size(parts[1])


def decode_stats_line(line: str) -> Decoded[ContainerStats]:
    """Decode one ``docker stats --no-stream --format '{{json .}}'`` line."""
    parsed = decode_json_object(line)
    if not parsed.ok or parsed.value is None:
        return Decoded(error=parsed.error)
    row = parsed.value

    container_id = row.get("ID") or row.get("Container")
    if not container_id or not isinstance(container_id, str):
        return Decoded.failure("Missing container ID", raw=line)

    used, limit = parse_memory_usage(row.get("MemUsage"))
    return Decoded.success(
        ContainerStats(
            id=container_id,
            name=str(row.get("Name") or ""),
            cpu_percent=parse_percentage(row.get("CPUPerc")),
            mem_usage_bytes=used,
            mem_limit_bytes=limit,
            mem_percent=parse_percentage(row.get("MemPerc")),
        )
    )


def parse_stats(text: str) -> list[ContainerStats]:
    """Decode stats output, one JSON object per line; malformed lines are dropped."""
    return _collect((decode_stats_line(line) for line in iter_lines(text)), "stats")


# Inspect


def parse_env_list(entries: list[Any] | None) -> list[EnvVar]:
    """Split ``KEY=VALUE`` entries on the first ``=``; order and duplicates are kept."""
    env: list[EnvVar] = []
    for entry in entries or []:
        if not isinstance(entry, str):
            continue
        key, _, value = entry.partition("=")
        env.append(EnvVar(key=key, value=value))
    return env


def format_cpu_limit(nano_cpus: int | float | None) -> str | None:
    """NanoCpus to a CLI decimal string: 1500000000 -> '1.5'."""
    if not nano_cpus:
        return None
    text = f"{nano_cpus / 1e9:.9f}".rstrip("0").rstrip(".")
    return text or None


def format_memory_limit(memory_bytes: int | None) -> str | None:
    """Byte count to docker shorthand: 536870912 -> '512m'.

    Uses the largest of g/m/k that divides exactly, otherwise the plain
    byte count.
    """
    if not memory_bytes or memory_bytes < 0:
        return None
    memory_bytes = int(memory_bytes)
    for suffix, factor in _MEMORY_LIMIT_UNITS:
        if memory_bytes % factor == 0:
            return f"{memory_bytes // factor}{suffix}"
    return str(memory_bytes)


def decode_inspect(text: str) -> Decoded[ContainerInspect]:
    """Decode ``docker inspect <id>`` output into env and resource limits."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return Decoded.failure(f"Invalid inspect JSON: {e}", raw=text)
    if isinstance(data, list):
        if not data:
            return Decoded.failure("Empty inspect result", raw=text)
        data = data[0]
    if not isinstance(data, dict):
        return Decoded.failure("Expected an inspect object", raw=text)

    config = data.get("Config") or {}
    host_config = data.get("HostConfig") or {}
    return Decoded.success(
        ContainerInspect(
            env=parse_env_list(config.get("Env")),
            limits=ResourceLimits(
                cpus=format_cpu_limit(host_config.get("NanoCpus")),
                memory=format_memory_limit(host_config.get("Memory")),
            ),
        )
    )


def parse_inspect(text: str) -> ContainerInspect:
    """Decode inspect output; undecodable output yields an empty record."""
    decoded = decode_inspect(text)
    if decoded.ok and decoded.value is not None:
        return decoded.value
    logger.warning("Could not decode inspect output", error=str(decoded.error))
    return ContainerInspect()


# Host overview


def parse_cores(text: str) -> int:
    """Parse `nproc` output."""
    try:
        return int(text.strip())
    except ValueError:
        return 0


def parse_load(text: str) -> list[float]:
    """Parse the 1/5/15 minute averages from /proc/loadavg."""
    load: list[float] = []
    for part in text.split()[:3]:
        try:
            load.append(float(part))
        except ValueError:
            break
    return load


def parse_memory_info(text: str) -> MemoryInfo:
    """Parse the ``Mem:`` row of `free -m`."""
    for line in iter_lines(text):
        parts = line.split()
        if parts[0] != "Mem:" or len(parts) < 4:
            continue
        try:
            total, used, free = (int(value) for value in parts[1:4])
        except ValueError:
            break
        used_percent = round(used / total * 100) if total else 0
        return MemoryInfo(total_mb=total, used_mb=used, free_mb=free, used_percent=used_percent)
    return MemoryInfo()


def decode_disk_line(line: str) -> Decoded[DiskUsage]:
    """Decode one row of `df -B1 --output=source,size,used,avail,pcent,target`."""
    parts = line.split()
    if len(parts) < 6:
        return Decoded.failure("Expected 6 columns", raw=line)
    try:
        size, used, avail = (int(value) for value in parts[1:4])
    except ValueError:
        return Decoded.failure("Non-numeric size column", raw=line)
    used_percent = parse_percentage(parts[4])
    return Decoded.success(
        DiskUsage(
            fs=parts[0],
            size_bytes=size,
            used_bytes=used,
            avail_bytes=avail,
            used_percent=int(used_percent or 0),
            target=" ".join(parts[5:]),
        )
    )


def parse_disk_usage(text: str) -> list[DiskUsage]:
    """Decode `df` output; the header row and malformed rows are dropped."""
    lines = [line for line in iter_lines(text) if not line.startswith("Filesystem")]
    return _collect((decode_disk_line(line) for line in lines), "disk")
