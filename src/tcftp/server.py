from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

from .config import ServerConfig
from .constants import ACK_RECEIPT, CONTROL_BUFSIZE, RESP_OK
from .datachannel import DataSender, Metrics
from .errors import ConnectionFailed, ProtocolError, TransferError
from .net import Address, TcpEndpoint, describe
from .request import GetOp, Request, parse_request
from .resources import ResourceProvider


@dataclass(slots=True)
class ControlSession:
    """One request/response cycle on an accepted control connection.

    The session never closes ``ctrl``; that belongs to the accept loop.
    """

    ctrl: TcpEndpoint
    peer: Address
    provider: ResourceProvider
    data_connect_delay: float = 0.0
    data: TcpEndpoint | None = None

    def run(self) -> Metrics | None:
        try:
            raw = self.ctrl.recv(CONTROL_BUFSIZE)
        except OSError as exc:
            logging.error("receiving command from %s failed: %s", describe(self.peer), exc)
            return None
        if not raw:
            logging.error("%s closed the control connection before sending a command", describe(self.peer))
            return None
        logging.info("command from %s: %r", describe(self.peer), raw)

        try:
            request = parse_request(raw)
            payload = self._resolve(request)
        except ProtocolError as exc:
            logging.warning("rejecting request from %s: %s (%s)", describe(self.peer), exc.response.decode(), exc)
            self._reply(exc.response)
            return None

        if not self._reply(RESP_OK):
            return None

        try:
            return self._transfer(request, payload)
        finally:
            self.close_data()

    def _resolve(self, request: Request) -> bytes:
        if isinstance(request.op, GetOp):
            return self.provider.read_file(request.op.filename)
        return self.provider.list_directory()

    def _reply(self, literal: bytes) -> bool:
        try:
            self.ctrl.send_all(literal)
        except OSError as exc:
            logging.error("sending %r to %s failed: %s", literal, describe(self.peer), exc)
            return False
        return True

    def _transfer(self, request: Request, payload: bytes) -> Metrics | None:
        if self.data_connect_delay > 0:
            time.sleep(self.data_connect_delay)

        host = self.peer[0]
        logging.info("opening data connection to %s", describe((host, request.data_port)))
        try:
            self.data = TcpEndpoint.connecting(host, request.data_port)
        except ConnectionFailed as exc:
            logging.error("%s", exc)
            return None

        try:
            metrics = DataSender(self.data, payload).run()
        except TransferError as exc:
            logging.error("%s", exc)
            return None
        logging.info(
            "sent %d/%d bytes in %.3fs (%.2f Mbit/s)",
            metrics.bytes_transferred,
            metrics.bytes_expected,
            metrics.duration_s,
            metrics.throughput_mbps,
        )

        self._await_receipt()
        return metrics

    def _await_receipt(self) -> None:
        try:
            ack = self.ctrl.recv(CONTROL_BUFSIZE)
        except OSError as exc:
            logging.warning("no acknowledgment of receipt from %s: %s", describe(self.peer), exc)
            return
        if ack.strip() == ACK_RECEIPT:
            logging.info("receipt acknowledged by %s", describe(self.peer))
        else:
            logging.warning("unexpected acknowledgment from %s: %r", describe(self.peer), ack)

    def close_data(self) -> None:
        if self.data is not None:
            self.data.close()
            self.data = None

    def abort(self) -> None:
        if self.data is not None:
            self.data.abort()
        self.ctrl.abort()


@dataclass(slots=True)
class Server:
    """Sequential accept loop: one control connection is served end to end before the next."""

    config: ServerConfig
    provider: ResourceProvider = field(init=False)
    listener: TcpEndpoint | None = None
    session: ControlSession | None = None
    _stop: threading.Event = field(default_factory=threading.Event)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def __post_init__(self) -> None:
        self.provider = ResourceProvider(self.config.root)

    def start(self) -> Address:
        self.listener = TcpEndpoint.listening(self.config.host, self.config.port, self.config.backlog)
        addr = self.listener.local_address
        logging.info("serving %s on %s", self.config.root, describe(addr))
        return addr

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def serve_forever(self) -> None:
        if self.listener is None:
            self.start()
        listener = self.listener
        if listener is None:
            raise ConnectionFailed("server has no listening socket")

        while not self._stop.is_set():
            logging.info("waiting for connection...")
            try:
                ctrl, peer = listener.accept()
            except OSError as exc:
                if self._stop.is_set():
                    break
                logging.error("accepting client connection failed: %s", exc)
                continue
            self.handle(ctrl, peer)

        logging.info("server loop stopped")

    def handle(self, ctrl: TcpEndpoint, peer: Address) -> Metrics | None:
        logging.info("client connection from %s", describe(peer))
        session = ControlSession(ctrl, peer, self.provider, self.config.data_connect_delay)
        with self._lock:
            self.session = session
        try:
            return session.run()
        except Exception:
            # one broken request must not stop the accept loop
            logging.exception("unexpected error serving %s", describe(peer))
            return None
        finally:
            with self._lock:
                self.session = None
            ctrl.close()
            logging.info("client connection %s closed", describe(peer))

    def shutdown(self) -> None:
        """Stop the loop and close every socket, including an in-flight transfer's."""
        self._stop.set()
        with self._lock:
            if self.session is not None:
                self.session.abort()
            if self.listener is not None:
                self.listener.abort()
