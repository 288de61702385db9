"""Clock abstraction for testable time handling in the login flow.

The only time-based decision in this package is how long a cached session
snapshot stays valid (:class:`~teldrive_login.transport.session.SessionCache`).
It MUST depend on an injected ``Clock`` rather than calling ``time.monotonic()``
directly so tests can move time forward deterministically.

Example
-------
>>> from teldrive_login.login_flow.clock import default_clock
>>> now = default_clock()
>>> isinstance(now, float)
True
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning a monotonically increasing time in seconds."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Default implementation that delegates to ``time.monotonic()``."""
    return time.monotonic()
