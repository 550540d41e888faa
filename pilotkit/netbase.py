"""Shared pieces for the socket layer: errors, call deadlines and readiness waits."""

from __future__ import annotations

import math
import selectors
import time
from dataclasses import dataclass
from numbers import Real
from typing import Any, Optional

INT_MAX = 2**31 - 1


class SocketError(Exception):
    """Raised when a socket operation fails."""


class SocketTimeout(SocketError):
    """Raised when an operation does not finish before its deadline."""

    def __init__(self, message: str = "timeout") -> None:
        super().__init__(message)


class SocketClosed(SocketError):
    """Raised when the peer has closed the connection.

    ``partial`` holds the bytes read before the end of the stream, if any.
    """

    def __init__(self, message: str = "closed", partial: bytes = b"") -> None:
        super().__init__(message)
        self.partial = partial


@dataclass(frozen=True)
class Deadline:
    """An absolute point on the monotonic clock; ``at=None`` means no limit."""

    at: Optional[float] = None

    def remaining_ms(self) -> int:
        """Milliseconds left: -1 without a limit, 0 once passed."""
        if self.at is None:
            return -1
        left = self.at - time.monotonic()
        if left <= 0:
            return 0
        return min(int(left * 1000), INT_MAX)

    def expired(self) -> bool:
        """Tell whether the deadline has passed."""
        return self.at is not None and time.monotonic() >= self.at


def make_deadline(timeout_ms: int) -> Deadline:
    """Build a deadline ``timeout_ms`` from now; zero or less means none."""
    if timeout_ms <= 0:
        return Deadline()
    return Deadline(time.monotonic() + timeout_ms / 1000.0)


def parse_timeout(value: Any, prefix: str) -> int:
    """Turn a timeout in seconds into whole milliseconds.

    ``None`` and 0 mean no timeout (0 is returned). A positive value below
    one millisecond becomes 1 so that it never disables the timeout.
    """
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{prefix}: timeout must be a number")
    seconds = float(value)
    if math.isnan(seconds) or not math.isfinite(seconds):
        raise ValueError(f"{prefix}: timeout must be finite (not NaN or inf)")
    if seconds < 0.0:
        raise ValueError(f"{prefix}: timeout must be >= 0")
    if seconds == 0.0:
        return 0
    ms = seconds * 1000.0
    if ms > INT_MAX:
        raise ValueError(f"{prefix}: timeout too large")
    return 1 if ms < 1.0 else int(ms)


def wait_ready(fileobj: Any, write: bool, deadline: Deadline) -> bool:
    """Wait until ``fileobj`` can be read (or written, if ``write``).

    Returns True when ready and False when the deadline passes first.
    """
    event = selectors.EVENT_WRITE if write else selectors.EVENT_READ
    with selectors.DefaultSelector() as selector:
        selector.register(fileobj, event)
        while True:
            remaining = deadline.remaining_ms()
            if deadline.at is not None and remaining == 0:
                return False
            timeout = None if remaining < 0 else remaining / 1000.0
            if selector.select(timeout):
                return True
            if deadline.at is None:
                continue
            if deadline.expired():
                return False