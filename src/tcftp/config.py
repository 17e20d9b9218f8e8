from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .constants import (
    DEFAULT_BACKLOG,
    DEFAULT_DATA_CONNECT_DELAY,
    MAX_PORT,
    MIN_PORT,
    RECOMMENDED_MIN_PORT,
)
from .errors import UsageError


def check_port(port: int, *, what: str = "port") -> int:
    """Reject ports outside the unprivileged range; warn below the recommended floor."""
    if port < MIN_PORT or port > MAX_PORT:
        raise UsageError(f"invalid {what}: {port} (use a port between {MIN_PORT} and {MAX_PORT})")
    if port < RECOMMENDED_MIN_PORT:
        logging.warning("%s %d is below the recommended minimum of %d", what, port, RECOMMENDED_MIN_PORT)
    return port


@dataclass(frozen=True, slots=True)
class ServerConfig:
    port: int
    host: str = ""
    root: Path = field(default_factory=Path.cwd)
    data_connect_delay: float = DEFAULT_DATA_CONNECT_DELAY
    backlog: int = DEFAULT_BACKLOG


@dataclass(frozen=True, slots=True)
class ClientConfig:
    host: str
    control_port: int
    data_port: int
    data_host: str = ""
    dest: Path = field(default_factory=Path.cwd)
