import re
import socket
import threading

import pytest

from pilotkit.netbase import SocketError, SocketTimeout
from pilotkit.network import connect, connect_tls, listen
from pilotkit.tls import TlsError


def _free_port():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


@pytest.fixture
def server():
    srv = listen("127.0.0.1", 0)
    yield srv
    srv.close()


def test_listen_is_listening_on_requested_host(server):
    assert server.listening is True
    assert server.sockname()["host"] == "127.0.0.1"
    assert "listening" in repr(server)


def test_connect_and_exchange(server):
    port = server.sockname()["port"]
    with connect("127.0.0.1", port) as client:
        peer = server.accept()
        with peer:
            assert client.send(b"hello\n") == 6
            assert peer.recv_line() == b"hello"
            assert peer.peer() == client.sockname()
            assert client.peer()["port"] == port


def test_connect_with_timeout_succeeds(server):
    port = server.sockname()["port"]
    with connect("127.0.0.1", port, 2.0) as client:
        with server.accept() as peer:
            peer.send(b"x")
            assert client.recv(1) == b"x"


def test_connect_refused_raises_socket_error():
    port = _free_port()
    with pytest.raises(SocketError, match="^socket: connect: "):
        connect("127.0.0.1", port)


def test_connect_refused_with_timeout_raises_socket_error():
    port = _free_port()
    with pytest.raises(SocketError) as info:
        connect("127.0.0.1", port, 1.0)
    assert not isinstance(info.value, SocketTimeout)


@pytest.mark.parametrize("port", [-1, 65536])
def test_connect_port_out_of_range(port):
    with pytest.raises(
        ValueError, match=re.escape("socket: connect: port must be in [0, 65535]")
    ):
        connect("127.0.0.1", port)


def test_connect_port_must_be_integer():
    with pytest.raises(TypeError):
        connect("127.0.0.1", "80")


def test_connect_negative_timeout_rejected():
    with pytest.raises(ValueError, match="timeout must be >= 0"):
        connect("127.0.0.1", 80, -1)


def test_connect_nan_timeout_rejected():
    with pytest.raises(ValueError, match="finite"):
        connect("127.0.0.1", 80, float("nan"))


def test_listen_port_out_of_range():
    with pytest.raises(
        ValueError, match=re.escape("socket: listen: port must be in [0, 65535]")
    ):
        listen("127.0.0.1", 70000)


def test_listen_backlog_must_be_positive():
    with pytest.raises(ValueError, match="socket: listen: backlog must be > 0"):
        listen("127.0.0.1", 0, 0)


def test_listen_all_interfaces():
    with listen("", 0) as srv:
        assert srv.listening is True
        assert srv.sockname()["port"] > 0


def test_listen_address_in_use_raises(server):
    port = server.sockname()["port"]
    with pytest.raises(SocketError, match="^socket: listen: "):
        listen("127.0.0.1", port)


def test_connect_tls_port_out_of_range():
    with pytest.raises(
        ValueError,
        match=re.escape("socket: connect_tls: port must be in [0, 65535]"),
    ):
        connect_tls("127.0.0.1", -5)


def test_connect_tls_invalid_options():
    with pytest.raises(TlsError, match="tls: opts.verify must be a boolean"):
        connect_tls("127.0.0.1", 443, {"verify": "yes"})


def test_connect_tls_handshake_times_out(server):
    port = server.sockname()["port"]
    with pytest.raises(SocketTimeout):
        connect_tls("127.0.0.1", port, {"timeout": 0.2, "verify": False})


def test_connect_tls_peer_closes_during_handshake(server):
    port = server.sockname()["port"]

    def accept_and_close():
        peer = server.accept()
        peer.close()

    worker = threading.Thread(target=accept_and_close)
    worker.start()
    try:
        with pytest.raises(SocketError):
            connect_tls("127.0.0.1", port, {"timeout": 2, "verify": False})
    finally:
        worker.join(timeout=5)
    assert not worker.is_alive()


def test_connect_tls_refused():
    port = _free_port()
    with pytest.raises(SocketError, match="^socket: connect: "):
        connect_tls("127.0.0.1", port, {"verify": False})