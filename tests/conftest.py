from __future__ import annotations

import socket
import threading

import pytest

from tcftp.client import Client
from tcftp.config import ClientConfig, ServerConfig
from tcftp.server import Server


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def served_dir(tmp_path):
    root = tmp_path / "served"
    root.mkdir()
    return root


@pytest.fixture
def download_dir(tmp_path):
    dest = tmp_path / "downloads"
    dest.mkdir()
    return dest


@pytest.fixture
def server(served_dir):
    srv = Server(ServerConfig(port=0, host="127.0.0.1", root=served_dir))
    srv.start()
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()
    yield srv
    srv.shutdown()
    t.join(timeout=5)


@pytest.fixture
def control_port(server):
    assert server.listener is not None
    return server.listener.local_address[1]


@pytest.fixture
def client(control_port, download_dir):
    return Client(ClientConfig(host="127.0.0.1", control_port=control_port, data_port=0, dest=download_dir))
