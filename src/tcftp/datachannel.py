from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Tuple

from .constants import DATA_BUFSIZE, HEADER_TERMINATOR, MAX_HEADER_LEN
from .errors import TransferError
from .net import TcpEndpoint


@dataclass(slots=True)
class Metrics:
    bytes_expected: int = 0
    bytes_transferred: int = 0
    complete: bool = False
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s


def encode_header(length: int) -> bytes:
    if length < 0:
        raise ValueError(f"negative payload length: {length}")
    return str(length).encode("ascii") + HEADER_TERMINATOR


def parse_header(raw: bytes) -> int:
    text = raw.strip()
    if not text:
        raise TransferError("empty transfer header")
    if not text.isdigit():
        raise TransferError(f"malformed transfer header: {raw!r}")
    return int(text)


@dataclass(slots=True)
class DataSender:
    conn: TcpEndpoint
    payload: bytes

    def run(self) -> Metrics:
        metrics = Metrics(bytes_expected=len(self.payload))

        try:
            self.conn.send_all(encode_header(len(self.payload)))
        except OSError as exc:
            raise TransferError(f"could not send transfer header: {exc}") from exc

        try:
            metrics.bytes_transferred = self.conn.send_all(self.payload)
        except OSError as exc:
            metrics.bytes_transferred = getattr(exc, "sent", 0)
            logging.warning(
                "payload send failed after %d of %d bytes: %s",
                metrics.bytes_transferred,
                metrics.bytes_expected,
                exc,
            )
        else:
            metrics.complete = True

        metrics.end_ts = time.monotonic()
        return metrics


@dataclass(slots=True)
class DataReceiver:
    conn: TcpEndpoint
    bufsize: int = DATA_BUFSIZE

    def run(self) -> Tuple[bytes, Metrics]:
        metrics = Metrics()
        try:
            metrics.bytes_expected = parse_header(self.conn.recv_line(MAX_HEADER_LEN))
            logging.debug("expecting %d payload bytes", metrics.bytes_expected)

            buf = bytearray()
            while len(buf) < metrics.bytes_expected:
                chunk = self.conn.recv(min(self.bufsize, metrics.bytes_expected - len(buf)))
                if not chunk:
                    raise TransferError(f"connection closed after {len(buf)} of {metrics.bytes_expected} bytes")
                buf += chunk
        except OSError as exc:
            raise TransferError(f"data connection failed: {exc}") from exc

        metrics.bytes_transferred = len(buf)
        metrics.complete = True
        metrics.end_ts = time.monotonic()
        return bytes(buf), metrics
