"""AuthOrchestrator – drives the login state machine over a channel.

The orchestrator owns one :class:`LoginState` and serialises every event
(user actions and inbound frames) through a single :class:`asyncio.Lock`, so
no two transitions ever run against the same state concurrently.  Decisions
are made by the pure :func:`~teldrive_login.login_flow.transitions.transition`;
this class only executes the resulting effects against injected
collaborators:

- a *channel* that accepts outbound JSON objects (fire-and-forget)
- a *session establisher* that turns a success payload into a session
- an optional *error sink* (toast/notification surface)
- an optional *progress indicator* wrapped around session establishment

Sending never waits for the paired reply; replies arrive later through
:meth:`AuthOrchestrator.receive` (or :meth:`AuthOrchestrator.run`).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any, AsyncIterable, Callable, Mapping, Protocol, runtime_checkable

from teldrive_login.login_flow.errors import (
    ChannelError,
    LoginError,
    MessageDecodeError,
    SessionEstablishmentError,
)
from teldrive_login.login_flow.log_utils import get_login_logger, mask_sensitive
from teldrive_login.login_flow.messages import encode_outbound, parse_inbound
from teldrive_login.login_flow.models import AuthMethod, FormValues, LoginState
from teldrive_login.login_flow.transitions import (
    Effect,
    EstablishSession,
    Event,
    Received,
    ReportError,
    SelectMethod,
    Send,
    Submit,
    TransitionOptions,
    transition,
)

ErrorSink = Callable[[LoginError], None]


# --------------------------------------------------------------------------- #
# Collaborator contracts                                                      #
# --------------------------------------------------------------------------- #
@runtime_checkable
class MessageChannel(Protocol):
    """Outbound half of the channel adapter."""

    async def send(self, message: Mapping[str, Any]) -> None: ...


@runtime_checkable
class SessionEstablisher(Protocol):
    """Creates a durable session from a success payload.

    Raises :class:`SessionEstablishmentError` when the session was not created.
    """

    async def establish(self, payload: Mapping[str, Any]) -> None: ...


@runtime_checkable
class ProgressIndicator(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


# --------------------------------------------------------------------------- #
# Orchestrator                                                                #
# --------------------------------------------------------------------------- #
class AuthOrchestrator:
    """Client-side login handshake over a single channel."""

    def __init__(
        self,
        channel: MessageChannel,
        establisher: SessionEstablisher,
        *,
        error_sink: ErrorSink | None = None,
        progress: ProgressIndicator | None = None,
        options: TransitionOptions | None = None,
        login_id: str | None = None,
    ) -> None:
        self._channel = channel
        self._establisher = establisher
        self._error_sink = error_sink
        self._progress = progress
        self._options = options or TransitionOptions()
        self.login_id: str = login_id or uuid.uuid4().hex
        self._log = get_login_logger(
            base_logger_name="teldrive-login.login_flow.orchestrator",
            login_id=self.login_id,
        )

        self._state = LoginState()
        self._lock = asyncio.Lock()
        self._changed = asyncio.Event()
        # None until a session payload was handed to the establisher
        self.session_established: bool | None = None
        self.finished: bool = False

    # ------------------------------------------------------------------ #
    # Observation                                                        #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> LoginState:
        return self._state

    async def wait_for_change(self) -> LoginState:
        """Wait until the state changes (or the run ends) and return it."""
        await self._changed.wait()
        return self._state

    def _notify(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def _set_state(self, state: LoginState) -> None:
        if state != self._state:
            self._state = state
            self._notify()

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #
    async def select_method(self, method: AuthMethod) -> bool:
        """Switch authentication method; returns False when nothing changed."""
        return await self._dispatch(SelectMethod(method))

    async def submit(self, values: FormValues) -> bool:
        """Submit the current step; returns False when the submit was ignored."""
        return await self._dispatch(Submit(values))

    async def receive(self, frame: str | bytes | Mapping[str, Any]) -> bool:
        """Handle one inbound frame; returns False when it was dropped."""
        try:
            message = parse_inbound(frame)
        except MessageDecodeError as exc:
            self._log.warning("Dropping inbound frame: %s", exc)
            return False
        if message is None:
            keys = sorted(frame) if isinstance(frame, Mapping) else "?"
            self._log.info("Dropping unrecognised inbound frame keys=%s", keys)
            return False
        return await self._dispatch(Received(message))

    async def run(self, frames: AsyncIterable[str | bytes | Mapping[str, Any]]) -> LoginState:
        """Consume *frames* until the login completes or the channel ends."""
        try:
            async for frame in frames:
                await self.receive(frame)
                if self._state.completed:
                    break
        finally:
            self.finished = True
            # no reply can arrive once the stream is gone
            self._set_state(replace(self._state, busy=False))
            self._notify()
        return self._state

    # ------------------------------------------------------------------ #
    # Internals                                                          #
    # ------------------------------------------------------------------ #
    async def _dispatch(self, event: Event) -> bool:
        async with self._lock:
            result = transition(self._state, event, self._options)
            if result.ignored is not None:
                self._log.info(
                    "Ignored %s: %s",
                    type(event).__name__,
                    result.ignored,
                    extra={"method": self._state.method.value},
                )
                return False
            self._set_state(result.state)
            for effect in result.effects:
                await self._execute(effect)
            return True

    async def _execute(self, effect: Effect) -> None:
        if isinstance(effect, Send):
            await self._send(effect)
        elif isinstance(effect, EstablishSession):
            await self._establish(effect.payload)
        elif isinstance(effect, ReportError):
            self._report(effect.error)

    async def _send(self, effect: Send) -> None:
        exchange_id = effect.exchange_id if self._options.tag_exchanges else None
        wire = encode_outbound(effect.message, exchange_id=exchange_id)
        extra = {"method": self._state.method.value}
        if exchange_id is not None:
            extra["correlation_id"] = str(exchange_id)
        try:
            await self._channel.send(wire)
        except ChannelError:
            self._set_state(replace(self._state, busy=False))
            self._log.warning("Could not send %s", type(effect.message).__name__, extra=extra)
            raise
        phone = wire.get("phoneNo")
        if phone:
            self._log.info(
                "Sent %s phone=%s",
                type(effect.message).__name__,
                mask_sensitive(phone, 4),
                extra=extra,
            )
        else:
            self._log.info("Sent %s", type(effect.message).__name__, extra=extra)

    async def _establish(self, payload: Mapping[str, Any]) -> None:
        if self._progress is not None:
            self._progress.start()
        try:
            await self._establisher.establish(payload)
        except SessionEstablishmentError as exc:
            self.session_established = False
            self._log.warning("Session establishment failed: %s", exc)
            self._report(exc)
        else:
            self.session_established = True
            self._log.info("Session established")
        finally:
            if self._progress is not None:
                self._progress.stop()
            self._notify()

    def _report(self, error: LoginError) -> None:
        self._log.info("Reporting %s: %s", error.kind, error)
        if self._error_sink is not None:
            self._error_sink(error)
