import math
import socket

import pytest

from pilotkit.netbase import SocketClosed, SocketError, SocketTimeout
from pilotkit.sockets import MAX_RECV_SIZE, Socket
from pilotkit.tls import TlsError


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    wrapped = Socket(a, False)
    yield wrapped, b
    wrapped.close()
    b.close()


@pytest.fixture
def server():
    listener = socket.create_server(("127.0.0.1", 0))
    wrapped = Socket(listener, True)
    yield wrapped, listener.getsockname()
    wrapped.close()


def test_send_and_recv_round_trip(pair):
    s, peer = pair
    assert s.send(b"hello") == 5
    assert peer.recv(16) == b"hello"
    peer.sendall(b"world")
    assert s.recv(16) == b"world"


def test_send_text_is_encoded(pair):
    s, peer = pair
    text = "héllo"
    sent = s.send(text)
    assert sent == len(text.encode("utf-8"))
    assert peer.recv(16).decode("utf-8") == text


def test_send_empty_returns_zero(pair):
    s, _ = pair
    assert s.send(b"") == 0


def test_send_rejects_other_types(pair):
    s, _ = pair
    with pytest.raises(TypeError):
        s.send(123)


def test_recv_respects_count(pair):
    s, peer = pair
    peer.sendall(b"abcdef")
    assert s.recv(3) == b"abc"
    assert s.recv(3) == b"def"


def test_recv_eof_raises_closed(pair):
    s, peer = pair
    peer.close()
    with pytest.raises(SocketClosed):
        s.recv(4)


def test_recv_timeout(pair):
    s, _ = pair
    s.set_timeout(0.05)
    with pytest.raises(SocketTimeout):
        s.recv(4)


@pytest.mark.parametrize("count", [0, -1, MAX_RECV_SIZE + 1])
def test_recv_rejects_bad_count(pair, count):
    s, _ = pair
    with pytest.raises(ValueError):
        s.recv(count)


def test_recv_rejects_non_integer_count(pair):
    s, _ = pair
    with pytest.raises(TypeError):
        s.recv(1.5)


def test_recv_line_strips_lf_and_crlf(pair):
    s, peer = pair
    peer.sendall(b"first\r\nsecond\nthird\n")
    assert s.recv_line() == b"first"
    assert s.recv_line() == b"second"
    assert s.recv_line() == b"third"


def test_recv_line_eof_carries_partial(pair):
    s, peer = pair
    peer.sendall(b"abc")
    peer.close()
    with pytest.raises(SocketClosed) as info:
        s.recv_line()
    assert info.value.partial == b"abc"
    assert str(info.value) == "closed"


def test_recv_line_keeps_bytes_after_timeout(pair):
    s, peer = pair
    s.set_timeout(0.05)
    peer.sendall(b":serv")
    with pytest.raises(SocketTimeout):
        s.recv_line()
    peer.sendall(b"er NOTICE\r\n")
    assert s.recv_line() == b":server NOTICE"


def test_recv_all_reads_until_eof(pair):
    s, peer = pair
    payload = b"x" * 10000 + b"end"
    peer.sendall(payload)
    peer.close()
    assert s.recv_all() == payload


def test_recv_all_empty_stream(pair):
    s, peer = pair
    peer.close()
    assert s.recv_all() == b""


def test_recv_all_timeout(pair):
    s, peer = pair
    s.set_timeout(0.05)
    peer.sendall(b"partial")
    with pytest.raises(SocketTimeout):
        s.recv_all()


def test_operations_on_closed_socket(pair):
    s, _ = pair
    s.close()
    assert s.closed
    with pytest.raises(SocketError, match="socket: send: socket is closed"):
        s.send(b"x")
    with pytest.raises(SocketError, match="socket: recv: socket is closed"):
        s.recv(1)
    with pytest.raises(SocketError, match="socket: recv_line: socket is closed"):
        s.recv_line()
    with pytest.raises(SocketError, match="socket: peer: socket is closed"):
        s.peer()


def test_close_is_idempotent(pair):
    s, _ = pair
    s.close()
    s.close()
    assert repr(s) == "socket (closed)"


def test_context_manager_closes():
    a, b = socket.socketpair()
    with Socket(a) as s:
        assert not s.closed
    assert s.closed
    b.close()


def test_repr_of_stream():
    a, b = socket.socketpair()
    fd = a.fileno()
    s = Socket(a, False)
    assert repr(s) == f"socket (stream, fd={fd})"
    s.close()
    b.close()


def test_repr_of_listening(server):
    srv, _ = server
    assert repr(srv).startswith("socket (listening, fd=")


def test_set_timeout_values(pair):
    s, _ = pair
    s.set_timeout(0.0001)
    assert s.timeout_ms == 1
    s.set_timeout(2)
    assert s.timeout_ms == 2000
    s.set_timeout(0)
    assert s.timeout_ms == 0


@pytest.mark.parametrize("value", [-1, math.nan, math.inf, -math.inf, 1e12])
def test_set_timeout_rejects_bad_values(pair, value):
    s, _ = pair
    with pytest.raises(ValueError):
        s.set_timeout(value)


def test_set_timeout_rejects_non_number(pair):
    s, _ = pair
    with pytest.raises(TypeError):
        s.set_timeout("1")


def test_accept_and_addresses(server):
    srv, address = server
    client = socket.create_connection(address)
    try:
        accepted = srv.accept()
        try:
            assert accepted.listening is False
            peer = accepted.peer()
            assert peer == {"host": "127.0.0.1", "port": client.getsockname()[1]}
            assert accepted.sockname()["port"] == address[1]
            client.sendall(b"ping\n")
            assert accepted.recv_line() == b"ping"
        finally:
            accepted.close()
    finally:
        client.close()


def test_sockname_of_listening(server):
    srv, address = server
    assert srv.sockname() == {"host": address[0], "port": address[1]}


def test_accept_timeout(server):
    srv, _ = server
    srv.set_timeout(0.05)
    with pytest.raises(SocketTimeout):
        srv.accept()


def test_accept_on_stream_socket(pair):
    s, _ = pair
    with pytest.raises(SocketError, match="socket is not listening"):
        s.accept()


def test_stream_ops_on_listening_socket(server):
    srv, _ = server
    with pytest.raises(SocketError, match="cannot send on a listening socket"):
        srv.send(b"x")
    with pytest.raises(SocketError, match="cannot recv on a listening socket"):
        srv.recv(1)
    with pytest.raises(SocketError, match="cannot start TLS on a listening socket"):
        srv.starttls({"verify": False})


def test_starttls_requires_hostname_when_verifying(pair):
    s, _ = pair
    with pytest.raises(TlsError, match="requires opts.hostname"):
        s.starttls()
    assert s.is_tls is False


def test_starttls_rejects_bad_options(pair):
    s, _ = pair
    with pytest.raises(TlsError, match="opts.verify must be a boolean"):
        s.starttls({"verify": "yes"})


def test_starttls_on_closed_socket(pair):
    s, _ = pair
    s.close()
    with pytest.raises(SocketError, match="socket: starttls: socket is closed"):
        s.starttls({"verify": False})


def test_starttls_timeout_leaves_plain_socket(pair):
    s, peer = pair
    s.set_timeout(0.1)
    with pytest.raises(SocketTimeout):
        s.starttls({"verify": False})
    assert s.is_tls is False
    assert s.closed is False
    assert s.send(b"ok") == 2


def test_starttls_with_closed_peer_fails(pair):
    s, peer = pair
    peer.close()
    s.set_timeout(1)
    with pytest.raises(TlsError):
        s.starttls({"verify": False})
    assert s.is_tls is False