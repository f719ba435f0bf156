"""Dotenv file codec used when editing a project's environment files."""

import re

from ..models.container import EnvVar

_NEEDS_QUOTES = re.compile(r"[\s\"']")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        inner = value[1:-1]
        if value[0] == '"':
            inner = inner.replace('\\"', '"')
        return inner
    return value


def parse_env_file(content: str) -> list[EnvVar]:
    """Parse dotenv text into ordered key/value pairs.

    Blank lines, ``#`` comments and lines without a key are skipped. The
    split happens on the first ``=``; surrounding matching quotes are removed.

    Examples:
        >>> parse_env_file('KEY="a value"')
        [EnvVar(key='KEY', value='a value')]
    """
    env: list[EnvVar] = []
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        env.append(EnvVar(key=key, value=_unquote(value.strip())))
    return env


def serialize_env_vars(env: list[EnvVar]) -> str:
    """Render key/value pairs as dotenv text.

    Entries with a blank key are dropped. Values containing whitespace or
    quote characters are double-quoted with inner ``"`` escaped.
    """
    lines = []
    for var in env:
        key = var.key.strip()
        if not key:
            continue
        value = var.value
        if _NEEDS_QUOTES.search(value):
            value = '"' + value.replace('"', '\\"') + '"'
        lines.append(f"{key}={value}")
    return "\n".join(lines)
