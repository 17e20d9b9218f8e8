from __future__ import annotations

import socket
import threading

import pytest

from tcftp.config import ServerConfig
from tcftp.errors import ServerRefused
from tcftp.resources import ResourceProvider
from tcftp.server import Server


def _control(port: int) -> socket.socket:
    return socket.create_connection(("127.0.0.1", port))


def _data_listener() -> socket.socket:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    s.listen(1)
    return s


def _recv_exact(sock: socket.socket, n: int) -> bytes:
    buf = b""
    while len(buf) < n:
        chunk = sock.recv(n - len(buf))
        assert chunk, "peer closed early"
        buf += chunk
    return buf


def test_get_round_trip(served_dir, download_dir, client):
    (served_dir / "hello.txt").write_bytes(b"hi\n")

    result = client.get_file("hello.txt")

    assert result.payload == b"hi\n"
    assert result.saved_to == download_dir / "hello.txt"
    assert result.saved_to.read_bytes() == b"hi\n"


def test_get_binary_file(served_dir, client):
    data = bytes(range(256)) * 4096
    (served_dir / "blob.bin").write_bytes(data)

    result = client.get_file("blob.bin")

    assert result.payload == data
    assert result.saved_to is not None
    assert result.saved_to.stat().st_size == len(data)


def test_get_dedups_existing_download(served_dir, download_dir, client):
    (served_dir / "hello.txt").write_bytes(b"hi\n")
    (download_dir / "hello.txt").write_bytes(b"older")

    first = client.get_file("hello.txt")
    second = client.get_file("hello.txt")

    assert first.saved_to == download_dir / "hello.txt~1~"
    assert second.saved_to == download_dir / "hello.txt~2~"
    assert (download_dir / "hello.txt").read_bytes() == b"older"


def test_listing(served_dir, client):
    (served_dir / "x.txt").write_bytes(b"x")
    (served_dir / "y.txt").write_bytes(b"y")
    (served_dir / "nested").mkdir()

    result = client.list_directory()

    assert set(result.text.splitlines()) == {"x.txt", "y.txt"}
    assert len(result.payload) == len("x.txt") + len("y.txt") + 2
    assert result.saved_to is None


def test_empty_listing_is_a_space(client):
    assert client.list_directory().payload == b" "


def test_missing_file_is_refused(client):
    with pytest.raises(ServerRefused) as info:
        client.get_file("missing.txt")
    assert info.value.text == "FILE NOT FOUND"


def test_wire_exchange(served_dir, control_port):
    (served_dir / "hello.txt").write_bytes(b"hi\n")
    data_listener = _data_listener()
    data_port = data_listener.getsockname()[1]

    with _control(control_port) as ctrl, data_listener:
        ctrl.sendall(f"-g hello.txt {data_port}".encode())
        assert ctrl.recv(64) == b"OK"

        conn, _ = data_listener.accept()
        with conn:
            assert _recv_exact(conn, 5) == b"3\nhi\n"
        ctrl.sendall(b"OK")


def test_missing_file_opens_no_data_connection(control_port):
    data_listener = _data_listener()
    data_listener.settimeout(0.5)
    data_port = data_listener.getsockname()[1]

    with _control(control_port) as ctrl, data_listener:
        ctrl.sendall(f"-g missing.txt {data_port}".encode())
        assert ctrl.recv(64) == b"FILE NOT FOUND"
        assert ctrl.recv(64) == b""  # server hung up
        with pytest.raises(socket.timeout):
            data_listener.accept()


@pytest.mark.parametrize("command", [b"-x 51000", b"list 51000", b"-g", b"-l"])
def test_invalid_command(control_port, command):
    with _control(control_port) as ctrl:
        ctrl.sendall(command)
        assert ctrl.recv(64) == b"INVALID COMMAND"


def test_server_survives_bad_peers(served_dir, control_port, client):
    # a client that hangs up without a command, then one that never takes the data connection
    _control(control_port).close()

    with _control(control_port) as ctrl:
        closed_listener = _data_listener()
        port = closed_listener.getsockname()[1]
        closed_listener.close()
        ctrl.sendall(f"-l {port}".encode())
        assert ctrl.recv(64) == b"OK"

    (served_dir / "still.txt").write_bytes(b"alive")
    assert client.get_file("still.txt").payload == b"alive"


def test_shutdown_unblocks_accept(served_dir):
    srv = Server(ServerConfig(port=0, host="127.0.0.1", root=served_dir))
    srv.start()
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()

    srv.shutdown()
    t.join(timeout=5)

    assert not t.is_alive()
    assert srv.stopping


def test_shutdown_closes_in_flight_session(served_dir):
    srv = Server(ServerConfig(port=0, host="127.0.0.1", root=served_dir))
    _, port = srv.start()
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()

    with _control(port) as ctrl:
        # the session is now parked waiting for a command
        ctrl.settimeout(5)
        for _ in range(100):
            if srv.session is not None:
                break
            threading.Event().wait(0.01)
        srv.shutdown()
        t.join(timeout=5)
        assert ctrl.recv(64) == b""

    assert not t.is_alive()


@pytest.mark.parametrize(
    "command, reply",
    [
        ("-l ²".encode(), b"INVALID COMMAND"),
        ("-g hello.txt ٣".encode(), b"INVALID COMMAND"),
        (b"-g a\x00b 51000", b"FILE NOT FOUND"),
    ],
)
def test_malformed_commands_keep_server_alive(served_dir, control_port, client, command, reply):
    with _control(control_port) as ctrl:
        ctrl.settimeout(5)
        ctrl.sendall(command)
        assert ctrl.recv(64) == reply

    (served_dir / "after.txt").write_bytes(b"still here")
    assert client.get_file("after.txt").payload == b"still here"


def test_unexpected_error_does_not_stop_server(served_dir, control_port, client, monkeypatch, caplog):
    def boom(self):
        raise RuntimeError("listing exploded")

    monkeypatch.setattr(ResourceProvider, "list_directory", boom)
    with _control(control_port) as ctrl:
        ctrl.settimeout(5)
        ctrl.sendall(b"-l 51000")
        assert ctrl.recv(64) == b""
    monkeypatch.undo()

    (served_dir / "after.txt").write_bytes(b"ok")
    assert client.get_file("after.txt").payload == b"ok"
    assert "unexpected error serving" in caplog.text


def test_serve_forever_starts_listener(served_dir):
    srv = Server(ServerConfig(port=0, host="127.0.0.1", root=served_dir))
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()
    for _ in range(500):
        if srv.listener is not None:
            break
        threading.Event().wait(0.01)

    assert srv.listener is not None
    srv.shutdown()
    t.join(timeout=5)
    assert not t.is_alive()
