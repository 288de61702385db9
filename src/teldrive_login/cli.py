"""teldrive-login

Sign in to a teldrive instance from the terminal over the auth websocket.

Key features
------------
* Phone login: prompts for the number, the login code and, when the server
  asks for it, the 2FA password
* QR login: prints every refreshed QR token until the login is confirmed
* Settings come from ``TELDRIVE_*`` environment variables; flags override them
* Secrets are never echoed or logged
* After login the signed-in user is read back from the session endpoint

Example
-------
    teldrive-login --url https://drive.example.com --method qr
"""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import getpass
import logging
import sys
import threading
from dataclasses import replace
from typing import Any, Mapping, Sequence

import httpx

from teldrive_login.login_flow.errors import ChannelError, InvalidStateError, LoginError, ValidationError
from teldrive_login.login_flow.models import AuthMethod, FormValues, Step
from teldrive_login.login_flow.orchestrator import AuthOrchestrator
from teldrive_login.login_flow.transitions import TransitionOptions
from teldrive_login.transport.channel import WebSocketChannel
from teldrive_login.transport.session import HttpSessionEstablisher, SessionCache
from teldrive_login.utils.environment import LoginSettings

logger = logging.getLogger("teldrive-login.cli")

HTTP_TIMEOUT = httpx.Timeout(20.0, connect=5.0)

# set while a worker thread is blocked reading the terminal
_READING = threading.Event()


# --------------------------------------------------------------------------- #
# Console collaborators
# --------------------------------------------------------------------------- #
class _ConsoleNavigator:
    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self.destination: str | None = None

    def navigate(self, destination: str, *, replace: bool = False) -> None:  # noqa: ARG002
        self.destination = destination
        print(f"Signed in. Continue at {self.base_url}{destination}")


class _ConsoleProgress:
    def start(self) -> None:
        print("Creating session…", flush=True)

    def stop(self) -> None:
        pass


def _print_error(error: LoginError) -> None:
    print(f"error: {error}", file=sys.stderr)


def _read_line(reader, text: str) -> str:
    _READING.set()
    try:
        return reader(text)
    finally:
        _READING.clear()


async def _prompt(text: str, *, secret: bool = False) -> str:
    reader = getpass.getpass if secret else input
    return await asyncio.to_thread(_read_line, reader, text)


# --------------------------------------------------------------------------- #
# Interactive loop
# --------------------------------------------------------------------------- #
async def _read_values(step: Step) -> FormValues:
    if step is Step.SECOND_FACTOR:
        return FormValues(password=await _prompt("2FA password: ", secret=True))
    if step is Step.CODE_VERIFICATION:
        return FormValues(phone_code=await _prompt("Login code: "))
    return FormValues(phone_number=await _prompt("Phone number: "))


async def _drive(orchestrator: AuthOrchestrator, method: AuthMethod) -> None:
    """Prompt the user whenever the next move is theirs."""
    if method is AuthMethod.QR:
        await orchestrator.select_method(AuthMethod.QR)

    shown_token: str | None = None
    while not orchestrator.finished and not orchestrator.state.completed:
        state = orchestrator.state
        if state.method is AuthMethod.QR and state.qr_token and state.qr_token != shown_token:
            shown_token = state.qr_token
            print(f"Scan this QR login token with the Telegram app: {shown_token}", flush=True)

        if not state.awaiting_user:
            await orchestrator.wait_for_change()
            continue

        values = await _read_values(state.step)
        try:
            await orchestrator.submit(values)
        except (ValidationError, InvalidStateError) as exc:
            _print_error(exc)


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


async def _supervise(runner: asyncio.Task, driver: asyncio.Task) -> None:
    """Wait for the frame loop and tear down the prompt loop once it ends."""
    done, _ = await asyncio.wait({runner, driver}, return_when=asyncio.FIRST_COMPLETED)

    if driver in done and driver.exception() is not None:
        await _cancel(runner)
        raise driver.exception()  # type: ignore[misc]
    await runner
    if not driver.done():
        await _cancel(driver)
        # a blocked terminal read cannot be interrupted from here
        if _READING.is_set():
            print("Connection closed; press Enter to exit.", file=sys.stderr, flush=True)


# --------------------------------------------------------------------------- #
# Current session
# --------------------------------------------------------------------------- #
async def _fetch_session(client: httpx.AsyncClient, path: str) -> Mapping[str, Any] | None:
    try:
        resp = await client.get(path)
    except httpx.HTTPError as exc:
        logger.warning("Could not read the current session: %s", exc)
        return None
    if not resp.is_success:
        logger.info("Session lookup returned %s", resp.status_code)
        return None
    try:
        data = resp.json()
    except ValueError:
        logger.warning("Session lookup returned a non-JSON body")
        return None
    return data if isinstance(data, Mapping) else None


async def _report_session(client: httpx.AsyncClient, cache: SessionCache, path: str) -> str | None:
    """Print who is signed in; returns the user name when the server reports one."""
    session = await cache.get_or_load(lambda: _fetch_session(client, path))
    name = session.get("userName") if session else None
    if name:
        print(f"Logged in as {name}")
    return name


async def _run(settings: LoginSettings, method: AuthMethod) -> int:
    navigator = _ConsoleNavigator(settings.url)
    cache = SessionCache(settings.session_cache_ttl)
    options = TransitionOptions(
        default_region=settings.phone_region,
        tag_exchanges=settings.tag_exchanges,
    )
    async with WebSocketChannel(settings.ws_url) as channel, httpx.AsyncClient(
        base_url=settings.url, timeout=HTTP_TIMEOUT
    ) as client:
        establisher = HttpSessionEstablisher(
            client,
            navigator,
            cache=cache,
            login_path=settings.login_path,
            redirect=settings.redirect,
        )
        orchestrator = AuthOrchestrator(
            channel,
            establisher,
            error_sink=_print_error,
            progress=_ConsoleProgress(),
            options=options,
        )
        runner = asyncio.create_task(orchestrator.run(channel))
        driver = asyncio.create_task(_drive(orchestrator, method))
        await _supervise(runner, driver)

        if orchestrator.session_established:
            await _report_session(client, cache, settings.session_path)
            return 0

    if not orchestrator.state.completed:
        print("error: connection closed before login completed", file=sys.stderr)
    return 1


# --------------------------------------------------------------------------- #
# Main
# --------------------------------------------------------------------------- #
def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teldrive-login",
        description="Sign in to teldrive by phone or QR code.",
    )
    parser.add_argument("--url", help="teldrive origin (default: $TELDRIVE_URL)")
    parser.add_argument(
        "--method",
        choices=[m.value for m in AuthMethod],
        default=AuthMethod.PHONE.value,
        help="login method (default: phone)",
    )
    parser.add_argument("--redirect", help="destination after login (default: /my-drive)")
    parser.add_argument("--region", help="default region for numbers without + (default: IN)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
    )

    settings = LoginSettings.from_env()
    overrides = {
        "url": args.url.rstrip("/") if args.url else None,
        "redirect": args.redirect,
        "phone_region": args.region.upper() if args.region else None,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v})

    try:
        return asyncio.run(_run(settings, AuthMethod(args.method)))
    except ChannelError as exc:
        _print_error(exc)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
