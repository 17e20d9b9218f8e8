from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .constants import FLAG_GET, FLAG_LIST
from .errors import InvalidCommand


@dataclass(frozen=True, slots=True)
class ListOp:
    pass


@dataclass(frozen=True, slots=True)
class GetOp:
    filename: str


Operation = Union[ListOp, GetOp]


@dataclass(frozen=True, slots=True)
class Request:
    op: Operation
    data_port: int

    @property
    def is_listing(self) -> bool:
        return isinstance(self.op, ListOp)


def _parse_port(token: str) -> int:
    if not (token.isascii() and token.isdigit()):
        raise InvalidCommand(f"data port is not numeric: {token!r}")
    port = int(token)
    if not 0 < port <= 65535:
        raise InvalidCommand(f"data port out of range: {port}")
    return port


def parse_request(line: str | bytes) -> Request:
    """Turn ``-l <port>`` or ``-g <name> <port>`` into a :class:`Request`.

    Filenames are taken verbatim; confinement to the served directory is the
    resource provider's job.
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidCommand("command is not valid UTF-8") from exc

    tokens = line.split()
    if not tokens:
        raise InvalidCommand("empty command")

    flag, rest = tokens[0], tokens[1:]
    if flag == FLAG_LIST:
        if len(rest) != 1:
            raise InvalidCommand(f"expected '{FLAG_LIST} <port>', got {line!r}")
        return Request(ListOp(), _parse_port(rest[0]))
    if flag == FLAG_GET:
        if len(rest) != 2:
            raise InvalidCommand(f"expected '{FLAG_GET} <filename> <port>', got {line!r}")
        return Request(GetOp(rest[0]), _parse_port(rest[1]))

    raise InvalidCommand(f"unknown flag: {flag!r}")


def format_request(request: Request) -> bytes:
    if isinstance(request.op, GetOp):
        parts = [FLAG_GET, request.op.filename, str(request.data_port)]
    else:
        parts = [FLAG_LIST, str(request.data_port)]
    return " ".join(parts).encode("utf-8")
