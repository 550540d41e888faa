"""TLS client layer: option parsing, context setup, socket wrapping and handshake."""

from __future__ import annotations

import math
import socket
import ssl
from collections.abc import Mapping
from dataclasses import dataclass
from numbers import Real
from typing import Any, Optional, Union

from pilotkit.netbase import (
    INT_MAX,
    Deadline,
    SocketError,
    SocketTimeout,
    wait_ready,
)

_VERSIONS = {
    "1.2": ssl.TLSVersion.TLSv1_2,
    "1.3": ssl.TLSVersion.TLSv1_3,
}


class TlsError(SocketError):
    """Raised when TLS setup, configuration or the handshake fails."""


@dataclass
class TlsOptions:
    """Client TLS settings; verification is on unless turned off."""

    verify: bool = True
    ca_cert: str = ""
    ca_path: str = ""
    hostname: str = ""
    min_version: str = "1.2"
    timeout_ms: int = 0


def _format(context: str, exc: BaseException) -> str:
    reason = getattr(exc, "reason", None) or getattr(exc, "strerror", None)
    if not reason:
        reason = str(exc) or "(no openssl error in queue)"
    if context:
        return f"tls: {context}: {reason}"
    return f"tls: {reason}"


def _string_field(options: Mapping, name: str) -> Optional[str]:
    value = options.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TlsError(f"tls: opts.{name} must be a string")
    return value


def _timeout_field(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TlsError("tls: opts.timeout must be a number")
    seconds = float(value)
    if math.isnan(seconds) or not math.isfinite(seconds):
        raise TlsError("tls: opts.timeout must be finite (not NaN or inf)")
    if seconds < 0.0:
        raise TlsError("tls: opts.timeout must be >= 0")
    if seconds == 0.0:
        return 0
    ms = seconds * 1000.0
    if ms > INT_MAX:
        raise TlsError("tls: opts.timeout too large")
    return 1 if ms < 1.0 else int(ms)


def parse_tls_options(options: Optional[Mapping]) -> TlsOptions:
    """Build TlsOptions from a mapping; ``None`` gives the defaults.

    Recognised keys: verify, ca_cert, ca_path, hostname, min_version and
    timeout (in seconds). Types are checked strictly.
    """
    result = TlsOptions()
    if options is None:
        return result
    if not isinstance(options, Mapping):
        raise TlsError("tls: opts must be a table")

    verify = options.get("verify")
    if verify is not None:
        if not isinstance(verify, bool):
            raise TlsError("tls: opts.verify must be a boolean")
        result.verify = verify

    ca_cert = _string_field(options, "ca_cert")
    if ca_cert is not None:
        result.ca_cert = ca_cert
    ca_path = _string_field(options, "ca_path")
    if ca_path is not None:
        result.ca_path = ca_path
    hostname = _string_field(options, "hostname")
    if hostname is not None:
        result.hostname = hostname

    min_version = _string_field(options, "min_version")
    if min_version is not None:
        if min_version not in _VERSIONS:
            raise TlsError("tls: opts.min_version must be '1.2' or '1.3'")
        result.min_version = min_version

    timeout = options.get("timeout")
    if timeout is not None:
        result.timeout_ms = _timeout_field(timeout)
    return result


def _coerce(options: Union[TlsOptions, Mapping, None]) -> TlsOptions:
    if isinstance(options, TlsOptions):
        return options
    return parse_tls_options(options)


def create_context(options: Union[TlsOptions, Mapping, None] = None) -> ssl.SSLContext:
    """Create a client context: TLS 1.2 minimum, system CAs, peer verification."""
    opts = _coerce(options)
    try:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.minimum_version = _VERSIONS.get(
            opts.min_version, ssl.TLSVersion.TLSv1_2
        )
    except (ssl.SSLError, ValueError) as exc:
        raise TlsError(_format("SSL_CTX_new failed", exc)) from exc

    try:
        context.load_default_certs()
    except (ssl.SSLError, OSError) as exc:
        raise TlsError(_format("set_default_verify_paths failed", exc)) from exc

    if opts.ca_cert or opts.ca_path:
        try:
            context.load_verify_locations(
                cafile=opts.ca_cert or None, capath=opts.ca_path or None
            )
        except (ssl.SSLError, OSError) as exc:
            raise TlsError(_format("load_verify_locations failed", exc)) from exc

    if opts.verify:
        context.check_hostname = True
        context.verify_mode = ssl.CERT_REQUIRED
    else:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def wrap(sock: socket.socket, options: Union[TlsOptions, Mapping, None] = None,
         host_default: Optional[str] = None) -> ssl.SSLSocket:
    """Attach a TLS session to a connected socket without shaking hands yet.

    With verification on, ``options.hostname`` (or else ``host_default``) is
    checked against the certificate and sent as SNI.
    """
    opts = _coerce(options)
    context = create_context(opts)
    server_hostname: Optional[str] = None
    if opts.verify:
        server_hostname = opts.hostname or host_default or None
        if server_hostname is None:
            context.check_hostname = False
    try:
        return context.wrap_socket(
            sock,
            server_hostname=server_hostname,
            do_handshake_on_connect=False,
        )
    except (ssl.SSLError, ValueError) as exc:
        raise TlsError(_format("SSL_set1_host failed", exc)) from exc


def handshake(tls_sock: ssl.SSLSocket, deadline: Deadline) -> None:
    """Run the client handshake within ``deadline``.

    The socket stays non-blocking on success. On failure its previous
    blocking mode is restored and TlsError or SocketTimeout is raised.
    """
    previous = tls_sock.gettimeout()
    tls_sock.setblocking(False)
    try:
        while True:
            try:
                tls_sock.do_handshake()
                return
            except ssl.SSLWantReadError:
                write = False
            except ssl.SSLWantWriteError:
                write = True
            except ssl.SSLCertVerificationError as exc:
                reason = exc.verify_message or "(unknown verify error)"
                raise TlsError(f"tls: certificate verify failed: {reason}") from exc
            except ssl.SSLError as exc:
                raise TlsError(_format("SSL_connect failed", exc)) from exc
            except OSError as exc:
                raise TlsError(_format("SSL_connect failed", exc)) from exc
            try:
                ready = wait_ready(tls_sock, write, deadline)
            except (OSError, ValueError) as exc:
                raise TlsError("tls: handshake poll failed") from exc
            if not ready:
                raise SocketTimeout()
    except BaseException:
        try:
            tls_sock.settimeout(previous)
        except OSError:
            pass
        raise