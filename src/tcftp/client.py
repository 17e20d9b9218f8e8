from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .config import ClientConfig
from .constants import ACK_RECEIPT, CONTROL_BUFSIZE, RESP_OK
from .datachannel import DataReceiver
from .errors import ServerRefused, TransferError
from .net import TcpEndpoint, describe
from .request import GetOp, ListOp, Request, format_request


def save_unique(data: bytes, filename: str, directory: Path | None = None) -> Path:
    """Write ``data`` to ``filename``, or to ``filename~N~`` for the first free N.

    Each candidate is created with O_EXCL, so an existing file is never
    overwritten even if it appears between attempts.
    """
    directory = Path.cwd() if directory is None else directory
    name = os.path.basename(filename)
    if name in ("", ".", ".."):
        raise TransferError(f"no file name to save in {filename!r}")
    candidate = directory / name
    n = 0
    while True:
        try:
            fd = os.open(candidate, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            n += 1
            candidate = directory / f"{name}~{n}~"
            continue
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        return candidate


@dataclass(frozen=True, slots=True)
class Result:
    request: Request
    payload: bytes
    saved_to: Path | None = None

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", "replace")


@dataclass(slots=True)
class Client:
    config: ClientConfig

    def list_directory(self) -> Result:
        return self.run(Request(ListOp(), self.config.data_port))

    def get_file(self, filename: str) -> Result:
        return self.run(Request(GetOp(filename), self.config.data_port))

    def run(self, request: Request) -> Result:
        try:
            payload = self._exchange(request)
        except OSError as exc:
            raise TransferError(f"connection failed mid-exchange: {exc}") from exc

        if isinstance(request.op, GetOp):
            try:
                path = save_unique(payload, request.op.filename, self.config.dest)
            except OSError as exc:
                raise TransferError(f"could not save {request.op.filename!r}: {exc}") from exc
            logging.info("saved %s (%d bytes)", path, len(payload))
            return Result(request, payload, saved_to=path)
        return Result(request, payload)

    def _exchange(self, request: Request) -> bytes:
        cfg = self.config
        with TcpEndpoint.connecting(cfg.host, cfg.control_port) as ctrl:
            logging.info("control connection to %s established", describe((cfg.host, cfg.control_port)))

            # listen before the server learns the port, so its connect cannot arrive early
            data_host = cfg.data_host or ctrl.local_address[0]
            with TcpEndpoint.listening(data_host, request.data_port) as listener:
                # port 0 asks the OS for one; announce whatever was bound
                bound_port = listener.local_address[1]
                if bound_port != request.data_port:
                    request = Request(request.op, bound_port)
                ctrl.send_all(format_request(request))
                self._await_ok(ctrl)

                logging.info("waiting for data connection on %s", describe(listener.local_address))
                conn, peer = listener.accept()
                with conn:
                    logging.info("data connection from %s", describe(peer))
                    payload, metrics = DataReceiver(conn).run()

            logging.info("received %d bytes in %.3fs", metrics.bytes_transferred, metrics.duration_s)
            ctrl.send_all(ACK_RECEIPT)
        return payload

    def _await_ok(self, ctrl: TcpEndpoint) -> None:
        response = ctrl.recv(CONTROL_BUFSIZE)
        if not response:
            raise TransferError("server closed the control connection without responding")
        if response.strip() != RESP_OK:
            raise ServerRefused(response.decode("utf-8", "replace").strip())
