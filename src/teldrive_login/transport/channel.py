"""Websocket channel adapter for the auth endpoint.

The adapter exposes exactly what the orchestrator needs: ``send`` for
outbound JSON objects and async iteration over inbound frames.  Opening and
closing the connection is the caller's business (``async with``); this module
implements no reconnect or backoff policy.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Mapping

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from teldrive_login.login_flow.errors import ChannelError

_LOG = logging.getLogger("teldrive-login.transport.channel")


class WebSocketChannel:
    """JSON message channel over one websocket connection."""

    def __init__(self, url: str, *, open_timeout: float | None = 10) -> None:
        self.url = url
        self._open_timeout = open_timeout
        self._connection: ClientConnection | None = None

    async def __aenter__(self) -> "WebSocketChannel":
        try:
            self._connection = await connect(self.url, open_timeout=self._open_timeout)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise ChannelError(f"Could not connect to {self.url}: {exc}") from exc
        _LOG.debug("Connected to %s", self.url)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            _LOG.debug("Closed %s", self.url)

    async def send(self, message: Mapping[str, Any]) -> None:
        if self._connection is None:
            raise ChannelError("channel is not open")
        try:
            await self._connection.send(json.dumps(message, separators=(",", ":")))
        except ConnectionClosed as exc:
            raise ChannelError(f"channel closed: {exc}") from exc

    async def __aiter__(self) -> AsyncIterator[str | bytes]:
        if self._connection is None:
            raise ChannelError("channel is not open")
        try:
            async for frame in self._connection:
                yield frame
        except ConnectionClosedError as exc:
            # the run simply ends; reconnecting is owned by the caller
            _LOG.warning("Channel closed with error: %s", exc)
