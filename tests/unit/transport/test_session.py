"""Unit tests for HttpSessionEstablisher and SessionCache.

HTTP is stubbed with ``httpx.MockTransport`` so no network is used.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Hashable

import httpx
import pytest

from teldrive_login.login_flow.errors import SessionEstablishmentError
from teldrive_login.transport.session import (
    HttpSessionEstablisher,
    SessionCache,
    SessionInvalidator,
)


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
class RecordingNavigator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []

    def navigate(self, destination: str, *, replace: bool = False) -> None:
        self.calls.append((destination, replace))


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


def fake_clock_factory(start: float) -> Callable[[], float]:
    now = [start]

    def clock() -> float:
        return now[0]

    clock.advance = lambda seconds: now.__setitem__(0, now[0] + seconds)  # type: ignore[attr-defined]
    return clock


def _loader(*values: Any):
    pending = list(values)

    async def load() -> Any:
        load.calls += 1  # type: ignore[attr-defined]
        return pending.pop(0)

    load.calls = 0  # type: ignore[attr-defined]
    return load


class RecordingInvalidator:
    def __init__(self) -> None:
        self.keys: list[Hashable] = []

    def invalidate(self, key: Hashable = "session") -> None:
        self.keys.append(key)


# --------------------------------------------------------------------------- #
# establish                                                                   #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_success_posts_payload_invalidates_and_navigates() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"message": "login success"})

    navigator = RecordingNavigator()
    cache = SessionCache()
    await cache.get_or_load(_loader({"userName": "stale"}))
    reload = _loader({"userName": "fresh"})

    async with _client(handler) as client:
        establisher = HttpSessionEstablisher(client, navigator, cache=cache)
        await establisher.establish({"session": "s1", "remember": True})

    (request,) = seen
    assert request.method == "POST"
    assert request.url.path == "/api/auth/login"
    assert json.loads(request.content) == {"session": "s1", "remember": True}
    assert await cache.get_or_load(reload) == {"userName": "fresh"}
    assert navigator.calls == [("/my-drive", True)]


@pytest.mark.anyio
async def test_redirect_overrides_default_destination() -> None:
    navigator = RecordingNavigator()
    async with _client(lambda r: httpx.Response(204)) as client:
        establisher = HttpSessionEstablisher(client, navigator, redirect="/shared")
        await establisher.establish({"session": "s"})
    assert navigator.calls == [("/shared", True)]


@pytest.mark.anyio
async def test_non_2xx_raises_without_side_effects() -> None:
    navigator = RecordingNavigator()
    invalidator = RecordingInvalidator()
    assert isinstance(invalidator, SessionInvalidator)

    async with _client(lambda r: httpx.Response(401, json={"message": "nope"})) as client:
        establisher = HttpSessionEstablisher(client, navigator, cache=invalidator)
        with pytest.raises(SessionEstablishmentError) as excinfo:
            await establisher.establish({"session": "s"})

    assert excinfo.value.status_code == 401
    assert navigator.calls == []
    assert invalidator.keys == []


@pytest.mark.anyio
async def test_transport_error_raises_session_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        establisher = HttpSessionEstablisher(client, RecordingNavigator())
        with pytest.raises(SessionEstablishmentError) as excinfo:
            await establisher.establish({"session": "s"})
    assert excinfo.value.status_code is None


# --------------------------------------------------------------------------- #
# cache                                                                       #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_session_cache_loads_once_until_expiry() -> None:
    clock = fake_clock_factory(1_000.0)
    cache = SessionCache(ttl=60, clock=clock)
    loader = _loader({"userName": "alice"}, {"userName": "bob"})

    assert await cache.get_or_load(loader) == {"userName": "alice"}
    clock.advance(59)  # type: ignore[attr-defined]
    assert await cache.get_or_load(loader) == {"userName": "alice"}
    assert loader.calls == 1  # type: ignore[attr-defined]

    clock.advance(2)  # type: ignore[attr-defined]
    assert await cache.get_or_load(loader) == {"userName": "bob"}
    assert loader.calls == 2  # type: ignore[attr-defined]


@pytest.mark.anyio
async def test_session_cache_invalidate_forces_reload() -> None:
    cache = SessionCache()
    assert cache.invalidate() is False

    loader = _loader(None, {"userName": "alice"})
    assert await cache.get_or_load(loader) is None
    assert await cache.get_or_load(loader) is None
    assert cache.invalidate() is True
    assert await cache.get_or_load(loader) == {"userName": "alice"}
