"""Session establishment after a successful handshake.

:class:`HttpSessionEstablisher` posts the success payload to the login
endpoint once.  A 2xx response means the session cookie was issued; the
cached "current session" entry is then invalidated and the navigator is sent
to the redirect target.  Any other outcome raises
:class:`~teldrive_login.login_flow.errors.SessionEstablishmentError` and
nothing is invalidated or navigated.  No retry is performed.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Final, Hashable, Mapping, Protocol, runtime_checkable

import httpx
from cachetools import TTLCache

from teldrive_login.login_flow.clock import Clock, default_clock
from teldrive_login.login_flow.errors import SessionEstablishmentError
from teldrive_login.utils.environment import (
    DEFAULT_REDIRECT,
    DEFAULT_SESSION_CACHE_TTL,
    LOGIN_PATH,
)

_LOG = logging.getLogger("teldrive-login.transport.session")

_MISSING = object()

SESSION_QUERY_KEY: Final[str] = "session"


@runtime_checkable
class Navigator(Protocol):
    """Routing capability injected by the front-end."""

    def navigate(self, destination: str, *, replace: bool = False) -> None: ...


@runtime_checkable
class SessionInvalidator(Protocol):
    """Drops cached "current session" data once a new session exists."""

    def invalidate(self, key: Hashable = SESSION_QUERY_KEY) -> None: ...


class SessionCache:
    """TTL-bounded cache of "current session" lookups.

    The front-end reads the signed-in session through :meth:`get_or_load`;
    :class:`HttpSessionEstablisher` invalidates it after a new login so the
    next read goes back to the server.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_SESSION_CACHE_TTL,
        *,
        maxsize: int = 16,
        clock: Clock = default_clock,
    ) -> None:
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)

    async def get_or_load(
        self,
        loader: Callable[[], Awaitable[Any]],
        key: Hashable = SESSION_QUERY_KEY,
    ) -> Any:
        """Return the cached entry for *key*, awaiting *loader* on a miss."""
        value = self._cache.get(key, _MISSING)
        if value is _MISSING:
            value = await loader()
            self._cache[key] = value
        return value

    def invalidate(self, key: Hashable = SESSION_QUERY_KEY) -> bool:
        """Drop *key*; returns True if an entry was present."""
        return self._cache.pop(key, _MISSING) is not _MISSING


class HttpSessionEstablisher:
    """Exchange a success payload for a session via one HTTP call."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        navigator: Navigator,
        *,
        cache: SessionInvalidator | None = None,
        login_path: str = LOGIN_PATH,
        redirect: str | None = None,
        default_destination: str = DEFAULT_REDIRECT,
    ) -> None:
        self._client = client
        self._navigator = navigator
        self.cache = cache if cache is not None else SessionCache()
        self._login_path = login_path
        self._destination = redirect or default_destination

    async def establish(self, payload: Mapping[str, Any]) -> None:
        try:
            resp = await self._client.post(self._login_path, json=dict(payload))
        except httpx.HTTPError as exc:
            raise SessionEstablishmentError(message=f"Session request failed: {exc}") from exc

        if not resp.is_success:
            raise SessionEstablishmentError(
                status_code=resp.status_code,
                message=f"Session endpoint returned {resp.status_code}",
            )

        self.cache.invalidate(SESSION_QUERY_KEY)
        _LOG.info("Session created; navigating to %s", self._destination)
        self._navigator.navigate(self._destination, replace=True)
