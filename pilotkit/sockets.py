"""Connected and listening TCP sockets with per-call deadlines and optional TLS."""

from __future__ import annotations

import math
import socket
import ssl
from numbers import Real
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pilotkit.netbase import (
    INT_MAX,
    Deadline,
    SocketClosed,
    SocketError,
    SocketTimeout,
    make_deadline,
    wait_ready,
)
from pilotkit.tls import TlsError, TlsOptions, handshake, parse_tls_options, wrap

MAX_RECV_SIZE = 16 * 1024 * 1024
_CHUNK = 4096
_NOSIGNAL = getattr(socket, "MSG_NOSIGNAL", 0)
_DONTWAIT = getattr(socket, "MSG_DONTWAIT", 0)
_NAME_FLAGS = socket.NI_NUMERICHOST | socket.NI_NUMERICSERV


def _strerror(exc: BaseException) -> str:
    return getattr(exc, "strerror", None) or str(exc)


def _errno_fail(op: str, exc: BaseException) -> SocketError:
    return SocketError(f"socket: {op}: {_strerror(exc)}")


def _tls_reason(exc: ssl.SSLError) -> str:
    return exc.reason or str(exc) or "(no openssl error in queue)"


def _plain_from(tls_sock: ssl.SSLSocket) -> Optional[socket.socket]:
    """Take the descriptor back from a TLS socket whose handshake failed."""
    try:
        fd = tls_sock.detach()
    except OSError:
        return None
    if fd is None or fd < 0:
        return None
    return socket.socket(fileno=fd)


class Socket:
    """A TCP socket: a stream (connected or accepted) or a listening socket.

    Every blocking call honours one deadline for the whole call, set with
    :meth:`set_timeout`. Bytes read by :meth:`recv_line` before a timeout are
    kept for the next call.
    """

    def __init__(self, sock: socket.socket, listening: bool = False) -> None:
        self._sock: Optional[socket.socket] = sock
        self._listening = bool(listening)
        self._timeout_ms = 0
        self._pending = b""

    # -- state ---------------------------------------------------------

    @property
    def closed(self) -> bool:
        """True once the socket has been closed."""
        return self._sock is None

    @property
    def listening(self) -> bool:
        """True for a socket that accepts connections."""
        return self._listening

    @property
    def is_tls(self) -> bool:
        """True when a TLS session is active on the socket."""
        return isinstance(self._sock, ssl.SSLSocket)

    @property
    def timeout_ms(self) -> int:
        """The per-call timeout in milliseconds; 0 means none."""
        return self._timeout_ms

    # -- helpers -------------------------------------------------------

    def _require_open(self, op: str) -> socket.socket:
        if self._sock is None:
            raise SocketError(f"socket: {op}: socket is closed")
        return self._sock

    def _require_stream(self, op: str, verb: str) -> socket.socket:
        sock = self._require_open(op)
        if self._listening:
            raise SocketError(
                f"socket: {op}: cannot {verb} on a listening socket"
            )
        return sock

    def _wait(self, op: str, write: bool, deadline: Deadline) -> None:
        try:
            ready = wait_ready(self._sock, write, deadline)
        except (OSError, ValueError) as exc:
            raise _errno_fail(op, exc) from exc
        if not ready:
            raise SocketTimeout()

    def _tls_has_data(self) -> bool:
        sock = self._sock
        return isinstance(sock, ssl.SSLSocket) and sock.pending() > 0

    def _read_some(self, size: int, op: str, deadline: Deadline,
                   flags: int = 0) -> Optional[bytes]:
        """Read once: bytes, b"" at end of stream, or None to try again."""
        sock = self._sock
        if isinstance(sock, ssl.SSLSocket):
            try:
                return sock.recv(size)
            except ssl.SSLWantReadError:
                return None
            except ssl.SSLWantWriteError:
                self._wait(op, True, deadline)
                return None
            except (ssl.SSLZeroReturnError, ssl.SSLEOFError):
                return b""
            except ssl.SSLError as exc:
                raise TlsError(
                    f"tls: SSL_read failed: {_tls_reason(exc)}"
                ) from exc
            except OSError as exc:
                raise SocketError(
                    f"tls: SSL_read syscall: {_strerror(exc)}"
                ) from exc
        try:
            return sock.recv(size, flags)
        except (BlockingIOError, InterruptedError):
            return None
        except OSError as exc:
            raise _errno_fail(op, exc) from exc

    def _wait_readable(self, op: str, deadline: Deadline) -> None:
        if not self._tls_has_data():
            self._wait(op, False, deadline)

    # -- data transfer -------------------------------------------------

    def send(self, data: Union[bytes, bytearray, memoryview, str]) -> int:
        """Send all of ``data`` and return the number of bytes sent.

        Text is encoded as UTF-8. Raises SocketClosed when the peer has gone
        and SocketTimeout when the deadline passes first.
        """
        if isinstance(data, str):
            payload = data.encode("utf-8")
        elif isinstance(data, (bytes, bytearray, memoryview)):
            payload = bytes(data)
        else:
            raise TypeError("socket: send: data must be bytes or str")
        sock = self._require_stream("send", "send")

        is_tls = isinstance(sock, ssl.SSLSocket)
        flags = _NOSIGNAL
        if not is_tls and self._timeout_ms > 0:
            flags |= _DONTWAIT
        deadline = make_deadline(self._timeout_ms)
        view = memoryview(payload)
        total = 0
        while total < len(view):
            self._wait("send", True, deadline)
            if is_tls:
                try:
                    total += sock.send(view[total:])
                except ssl.SSLWantWriteError:
                    continue
                except ssl.SSLWantReadError:
                    self._wait("send", False, deadline)
                except (ssl.SSLZeroReturnError, ssl.SSLEOFError) as exc:
                    raise SocketClosed() from exc
                except ssl.SSLError as exc:
                    raise TlsError(
                        f"tls: SSL_write failed: {_tls_reason(exc)}"
                    ) from exc
                except OSError as exc:
                    raise SocketError(
                        f"tls: SSL_write syscall: {_strerror(exc)}"
                    ) from exc
                continue
            try:
                total += sock.send(view[total:], flags)
            except (BlockingIOError, InterruptedError):
                continue
            except (BrokenPipeError, ConnectionResetError) as exc:
                raise SocketClosed() from exc
            except OSError as exc:
                raise _errno_fail("send", exc) from exc
        return total

    def recv(self, count: int) -> bytes:
        """Read at most ``count`` bytes (1 .. 16 MB)."""
        if isinstance(count, bool) or not isinstance(count, int):
            raise TypeError("socket: recv: count must be an integer")
        if count <= 0:
            raise ValueError("socket: recv: count must be > 0")
        if count > MAX_RECV_SIZE:
            raise ValueError("socket: recv: count exceeds 16 MB cap")
        sock = self._require_stream("recv", "recv")

        is_tls = isinstance(sock, ssl.SSLSocket)
        flags = _DONTWAIT if (not is_tls and self._timeout_ms > 0) else 0
        deadline = make_deadline(self._timeout_ms)
        while True:
            self._wait_readable("recv", deadline)
            chunk = self._read_some(count, "recv", deadline, flags)
            if chunk is None:
                continue
            if not chunk:
                raise SocketClosed()
            return chunk

    def recv_line(self) -> bytes:
        """Read up to a newline and return the line without ``\\n`` or ``\\r\\n``.

        At end of stream SocketClosed is raised, carrying the partial line.
        """
        self._require_stream("recv_line", "recv")
        deadline = make_deadline(self._timeout_ms)
        acc = bytearray(self._pending)
        self._pending = b""
        try:
            while True:
                self._wait_readable("recv_line", deadline)
                byte = self._read_some(1, "recv_line", deadline)
                if byte is None:
                    continue
                if not byte:
                    raise SocketClosed(partial=bytes(acc))
                if byte == b"\n":
                    if acc.endswith(b"\r"):
                        del acc[-1]
                    return bytes(acc)
                acc += byte
        except SocketClosed:
            raise
        except SocketError:
            self._pending = bytes(acc)
            raise

    def recv_all(self) -> bytes:
        """Read until the peer closes and return everything received."""
        self._require_stream("recv_all", "recv")
        deadline = make_deadline(self._timeout_ms)
        acc = bytearray()
        while True:
            self._wait_readable("recv_all", deadline)
            chunk = self._read_some(_CHUNK, "recv_all", deadline)
            if chunk is None:
                continue
            if not chunk:
                return bytes(acc)
            acc += chunk

    # -- connection management -----------------------------------------

    def accept(self) -> "Socket":
        """Wait for an incoming connection and return it as a stream Socket."""
        sock = self._require_open("accept")
        if not self._listening:
            raise SocketError("socket: accept: socket is not listening")
        deadline = make_deadline(self._timeout_ms)
        while True:
            self._wait("accept", False, deadline)
            try:
                client, _ = sock.accept()
            except (BlockingIOError, InterruptedError):
                continue
            except OSError as exc:
                raise _errno_fail("accept", exc) from exc
            client.setblocking(True)
            return Socket(client, False)

    def close(self) -> None:
        """Close the socket, ending a TLS session first; closing twice is harmless."""
        sock = self._sock
        if sock is None:
            return
        self._sock = None
        self._pending = b""
        if isinstance(sock, ssl.SSLSocket):
            try:
                sock.unwrap()
            except (ssl.SSLError, OSError, ValueError):
                pass
        sock.close()

    def set_timeout(self, seconds: float) -> None:
        """Set the deadline of every later call, in seconds; 0 disables it."""
        if isinstance(seconds, bool) or not isinstance(seconds, Real):
            raise TypeError("socket: set_timeout: value must be a number")
        value = float(seconds)
        if math.isnan(value) or not math.isfinite(value):
            raise ValueError(
                "socket: set_timeout: value must be finite (not NaN or inf)"
            )
        if value < 0.0:
            raise ValueError(
                "socket: set_timeout: value must be >= 0 (0 disables)"
            )
        if value == 0.0:
            self._timeout_ms = 0
            return
        ms = value * 1000.0
        if ms > INT_MAX:
            raise ValueError("socket: set_timeout: value too large")
        self._timeout_ms = 1 if ms < 1.0 else int(ms)

    def _address(self, op: str,
                 getter: Callable[[socket.socket], Any]) -> Dict[str, Any]:
        sock = self._require_open(op)
        try:
            addr = getter(sock)
        except OSError as exc:
            raise _errno_fail(op, exc) from exc
        try:
            host, port = socket.getnameinfo(addr, _NAME_FLAGS)
        except (OSError, TypeError, ValueError) as exc:
            raise SocketError(
                f"socket: getnameinfo: {_strerror(exc)}"
            ) from exc
        return {"host": host, "port": int(port)}

    def peer(self) -> Dict[str, Any]:
        """Return the remote address as ``{"host": ..., "port": ...}``."""
        return self._address("peer", lambda sock: sock.getpeername())

    def sockname(self) -> Dict[str, Any]:
        """Return the local address as ``{"host": ..., "port": ...}``."""
        return self._address("sockname", lambda sock: sock.getsockname())

    def starttls(self, options: Union[TlsOptions, Mapping, None] = None) -> None:
        """Upgrade this connected socket to TLS in place.

        With verification on (the default) ``options["hostname"]`` is required.
        If the handshake fails the socket stays a plain TCP socket.
        """
        sock = self._require_open("starttls")
        if self._listening:
            raise SocketError(
                "socket: starttls: cannot start TLS on a listening socket"
            )
        if isinstance(sock, ssl.SSLSocket):
            raise SocketError(
                "socket: starttls: TLS already active on this socket"
            )
        opts = options if isinstance(options, TlsOptions) else parse_tls_options(options)
        if opts.verify and not opts.hostname:
            raise TlsError(
                "tls: starttls with verify=true requires opts.hostname; "
                "pass hostname or set verify=false"
            )

        try:
            tls_sock = wrap(sock, opts, None)
        except SocketError:
            if sock.fileno() < 0:
                self._sock = None
            raise

        try:
            handshake(tls_sock, make_deadline(self._timeout_ms))
        except BaseException:
            self._sock = _plain_from(tls_sock)
            raise
        self._sock = tls_sock

    # -- protocol ------------------------------------------------------

    def __enter__(self) -> "Socket":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        sock = self._sock
        if sock is None or sock.fileno() < 0:
            return "socket (closed)"
        kind = "listening" if self._listening else "stream"
        return f"socket ({kind}, fd={sock.fileno()})"