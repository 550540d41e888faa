"""Opening TCP connections (plain or TLS) and listening sockets."""

from __future__ import annotations

import errno
import os
import socket
from typing import Any, List, Mapping, Optional, Tuple, Union

from pilotkit.netbase import (
    SocketError,
    SocketTimeout,
    make_deadline,
    parse_timeout,
    wait_ready,
)
from pilotkit.sockets import Socket
from pilotkit.tls import TlsOptions, handshake, parse_tls_options, wrap

DEFAULT_BACKLOG = 16

_AddrInfo = Tuple[int, int, int, str, Any]


def _check_host(host: Any, op: str) -> str:
    if not isinstance(host, str):
        raise TypeError(f"socket: {op}: host must be a string")
    return host


def _check_port(port: Any, op: str) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise TypeError(f"socket: {op}: port must be an integer")
    if not 0 <= port <= 65535:
        raise ValueError(f"socket: {op}: port must be in [0, 65535]")
    return port


def _resolve(host: str, port: int, passive: bool) -> List[_AddrInfo]:
    flags = socket.AI_PASSIVE if passive else 0
    try:
        return socket.getaddrinfo(
            host or None, str(port), socket.AF_UNSPEC, socket.SOCK_STREAM, 0, flags
        )
    except socket.gaierror as exc:
        raise SocketError(f"socket: getaddrinfo: {exc.strerror or exc}") from exc


def _error_code(exc: OSError) -> int:
    return exc.errno or 0


def _connect_one(info: _AddrInfo, timeout_ms: int) -> socket.socket:
    """Connect to one resolved address; raise OSError or SocketTimeout on failure."""
    family, socktype, proto, _, address = info
    sock = socket.socket(family, socktype, proto)
    try:
        if timeout_ms <= 0:
            sock.connect(address)
            return sock

        sock.setblocking(False)
        rc = sock.connect_ex(address)
        if rc == 0:
            sock.setblocking(True)
            return sock
        if rc not in (errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EAGAIN):
            raise OSError(rc, os.strerror(rc))

        deadline = make_deadline(timeout_ms)
        if not wait_ready(sock, True, deadline):
            raise SocketTimeout()
        soerr = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if soerr != 0:
            raise OSError(soerr, os.strerror(soerr))
        sock.setblocking(True)
        return sock
    except BaseException:
        sock.close()
        raise


def _tcp_connect(host: str, port: int, timeout_ms: int) -> socket.socket:
    """Try every resolved address in order; a timeout stops the search."""
    last_errno = 0
    for info in _resolve(host, port, passive=False):
        try:
            return _connect_one(info, timeout_ms)
        except SocketTimeout:
            raise
        except (OSError, ValueError) as exc:
            last_errno = _error_code(exc) if isinstance(exc, OSError) else 0
            continue
    raise SocketError(f"socket: connect: {os.strerror(last_errno)}")


def connect(host: str, port: int, timeout: Optional[float] = None) -> Socket:
    """Open a TCP connection to ``host``:``port``.

    ``timeout`` (seconds) bounds the connection phase only; use
    :meth:`Socket.set_timeout` for later calls.
    """
    host = _check_host(host, "connect")
    port = _check_port(port, "connect")
    timeout_ms = parse_timeout(timeout, "socket: connect")
    return Socket(_tcp_connect(host, port, timeout_ms), False)


def connect_tls(host: str, port: int,
                options: Union[TlsOptions, Mapping, None] = None) -> Socket:
    """Open a TCP connection to ``host``:``port`` and run a TLS handshake.

    ``options`` takes the keys of :func:`pilotkit.tls.parse_tls_options`;
    the hostname checked and sent as SNI defaults to ``host``.
    """
    host = _check_host(host, "connect_tls")
    port = _check_port(port, "connect_tls")
    opts = options if isinstance(options, TlsOptions) else parse_tls_options(options)

    raw = _tcp_connect(host, port, opts.timeout_ms)
    try:
        tls_sock = wrap(raw, opts, host)
    except BaseException:
        raw.close()
        raise
    try:
        handshake(tls_sock, make_deadline(opts.timeout_ms))
    except BaseException:
        tls_sock.close()
        raise
    return Socket(tls_sock, False)


def listen(host: str, port: int, backlog: Optional[int] = None) -> Socket:
    """Bind to ``host``:``port`` and listen; an empty host means all interfaces.

    Address reuse is enabled so that a restarted server can bind at once.
    """
    host = _check_host(host, "listen")
    port = _check_port(port, "listen")
    if backlog is None:
        backlog = DEFAULT_BACKLOG
    elif isinstance(backlog, bool) or not isinstance(backlog, int):
        raise TypeError("socket: listen: backlog must be an integer")
    elif backlog <= 0:
        raise ValueError("socket: listen: backlog must be > 0")

    last_errno = 0
    for family, socktype, proto, _, address in _resolve(host, port, passive=True):
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as exc:
            last_errno = _error_code(exc)
            continue
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(address)
            sock.listen(backlog)
        except OSError as exc:
            last_errno = _error_code(exc)
            sock.close()
            continue
        return Socket(sock, True)
    raise SocketError(f"socket: listen: {os.strerror(last_errno)}")