from __future__ import annotations

import contextlib
import socket
from typing import Tuple

from .constants import DATA_BUFSIZE
from .errors import ConnectionFailed, TransferError

Address = Tuple[str, int]


class TcpEndpoint:
    """A stream socket with a small read-ahead buffer for line-delimited headers."""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._pending = bytearray()

    @classmethod
    def listening(cls, host: str, port: int, backlog: int = 1) -> "TcpEndpoint":
        """Bind and listen on the first address getaddrinfo offers for ``host``."""
        try:
            infos = socket.getaddrinfo(host or None, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE)
        except socket.gaierror as exc:
            raise ConnectionFailed(f"cannot resolve listen address {host!r}:{port}: {exc}") from exc

        last_error: OSError | None = None
        for family, socktype, proto, _, sockaddr in infos:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError as exc:
                last_error = exc
                continue
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind(sockaddr)
                sock.listen(backlog)
            except OSError as exc:
                sock.close()
                last_error = exc
                continue
            return cls(sock)
        raise ConnectionFailed(f"failed to bind on port {port}: {last_error}")

    @classmethod
    def connecting(cls, host: str, port: int) -> "TcpEndpoint":
        try:
            infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except socket.gaierror as exc:
            raise ConnectionFailed(f"cannot resolve {host!r}:{port}: {exc}") from exc

        last_error: OSError | None = None
        for family, socktype, proto, _, sockaddr in infos:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError as exc:
                last_error = exc
                continue
            try:
                sock.connect(sockaddr)
            except OSError as exc:
                sock.close()
                last_error = exc
                continue
            return cls(sock)
        raise ConnectionFailed(f"failed to connect to {host}:{port}: {last_error}")

    @property
    def local_address(self) -> Address:
        return self.sock.getsockname()[:2]

    @property
    def peer_address(self) -> Address:
        return self.sock.getpeername()[:2]

    def accept(self) -> Tuple["TcpEndpoint", Address]:
        conn, addr = self.sock.accept()
        return TcpEndpoint(conn), addr[:2]

    def send_all(self, data: bytes) -> int:
        """Send ``data`` in full, retrying partial writes.

        Returns the number of bytes sent. On a hard error the OSError is
        re-raised with ``sent`` recorded on it.
        """
        view = memoryview(data)
        total = 0
        while total < len(view):
            try:
                n = self.sock.send(view[total:])
            except OSError as exc:
                exc.sent = total  # type: ignore[attr-defined]
                raise
            total += n
        return total

    def recv(self, bufsize: int) -> bytes:
        if self._pending:
            chunk = bytes(self._pending[:bufsize])
            del self._pending[:bufsize]
            return chunk
        return self.sock.recv(bufsize)

    def recv_line(self, limit: int) -> bytes:
        """Read through the first newline and return the line without it.

        Bytes that arrive after the newline stay buffered for :meth:`recv`.
        """
        while True:
            idx = self._pending.find(b"\n")
            if idx >= 0:
                line = bytes(self._pending[:idx])
                del self._pending[: idx + 1]
                return line
            if len(self._pending) > limit:
                raise TransferError(f"no newline within {limit} bytes")
            chunk = self.sock.recv(DATA_BUFSIZE)
            if not chunk:
                raise TransferError("connection closed before newline")
            self._pending += chunk

    def abort(self) -> None:
        """Unblock any thread parked in accept/recv/send on this socket, then close it."""
        with contextlib.suppress(OSError):
            self.sock.shutdown(socket.SHUT_RDWR)
        self.close()

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "TcpEndpoint":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def describe(addr: Address) -> str:
    host, port = addr
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
