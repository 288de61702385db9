"""I/O collaborators of the login flow: websocket channel and session call."""

from __future__ import annotations

from .channel import WebSocketChannel  # noqa: F401
from .session import (  # noqa: F401
    HttpSessionEstablisher,
    Navigator,
    SessionCache,
    SessionInvalidator,
)

__all__ = [
    "HttpSessionEstablisher",
    "Navigator",
    "SessionCache",
    "SessionInvalidator",
    "WebSocketChannel",
]
