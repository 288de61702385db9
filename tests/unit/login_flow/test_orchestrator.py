"""Unit tests for AuthOrchestrator effect execution.

Coverage:
* Outbound wire messages for the phone flow (with and without exchange ids)
* Single session establishment with progress start/stop
* Establishment failure is reported and clears progress
* Protocol errors reach the error sink; bad frames are dropped
* Send failures clear busy
* ``run`` stops after completion and wakes ``wait_for_change`` waiters
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping

import pytest

from teldrive_login.login_flow.errors import (
    ChannelError,
    LoginError,
    ProtocolError,
    SessionEstablishmentError,
)
from teldrive_login.login_flow.models import AuthMethod, FormValues, Step
from teldrive_login.login_flow.orchestrator import AuthOrchestrator
from teldrive_login.login_flow.transitions import TransitionOptions

PHONE = "+14155550100"


# --------------------------------------------------------------------------- #
# fakes                                                                       #
# --------------------------------------------------------------------------- #
class FakeChannel:
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send(self, message: Mapping[str, Any]) -> None:
        if self.fail:
            raise ChannelError("channel closed")
        self.sent.append(dict(message))


class FakeEstablisher:
    def __init__(self, *, error: SessionEstablishmentError | None = None) -> None:
        self.payloads: list[Mapping[str, Any]] = []
        self.error = error

    async def establish(self, payload: Mapping[str, Any]) -> None:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error


class FakeProgress:
    def __init__(self) -> None:
        self.events: list[str] = []

    def start(self) -> None:
        self.events.append("start")

    def stop(self) -> None:
        self.events.append("stop")


async def _frames(*frames: Any):
    for frame in frames:
        yield frame


def _build(**kwargs: Any):
    channel = kwargs.pop("channel", None) or FakeChannel()
    establisher = kwargs.pop("establisher", None) or FakeEstablisher()
    errors: list[LoginError] = []
    progress = FakeProgress()
    orch = AuthOrchestrator(
        channel,
        establisher,
        error_sink=errors.append,
        progress=progress,
        **kwargs,
    )
    return orch, channel, establisher, errors, progress


# --------------------------------------------------------------------------- #
# phone flow                                                                  #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_phone_flow_end_to_end() -> None:
    orch, channel, establisher, errors, progress = _build()

    assert await orch.submit(FormValues(phone_number=PHONE)) is True
    assert channel.sent == [{"authType": "phone", "message": "sendcode", "phoneNo": PHONE}]

    await orch.receive(json.dumps({"message": "codeIssued", "payload": {"phoneCodeHash": "abc123"}}))
    assert orch.state.step is Step.CODE_VERIFICATION
    assert orch.state.busy is False

    await orch.submit(FormValues(phone_code="54321"))
    assert channel.sent[-1] == {
        "authType": "phone",
        "message": "signin",
        "phoneNo": PHONE,
        "phoneCode": "54321",
        "phoneCodeHash": "abc123",
    }

    await orch.receive({"message": "2FA required"})
    assert orch.state.step is Step.SECOND_FACTOR

    await orch.submit(FormValues(password="pw"))
    assert channel.sent[-1] == {"authType": "2fa", "password": "pw"}

    await orch.receive({"message": "success", "payload": {"session": "s1"}})
    await orch.receive({"message": "success", "payload": {"session": "s1"}})

    assert establisher.payloads == [{"session": "s1"}]
    assert orch.session_established is True
    assert progress.events == ["start", "stop"]
    assert errors == []


@pytest.mark.anyio
async def test_submit_while_busy_sends_nothing() -> None:
    orch, channel, *_ = _build()
    await orch.submit(FormValues(phone_number=PHONE))

    assert await orch.submit(FormValues(phone_number=PHONE)) is False
    assert len(channel.sent) == 1


@pytest.mark.anyio
async def test_exchange_ids_on_the_wire() -> None:
    orch, channel, *_ = _build(options=TransitionOptions(tag_exchanges=True))
    await orch.select_method(AuthMethod.QR)
    await orch.select_method(AuthMethod.PHONE)
    await orch.submit(FormValues(phone_number=PHONE))

    assert [m["exchangeId"] for m in channel.sent] == [1, 2]


# --------------------------------------------------------------------------- #
# QR flow                                                                     #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_qr_requested_once_and_tokens_refresh() -> None:
    orch, channel, *_ = _build()

    assert await orch.select_method(AuthMethod.QR) is True
    assert await orch.select_method(AuthMethod.QR) is False
    await orch.select_method(AuthMethod.PHONE)
    await orch.select_method(AuthMethod.QR)
    assert channel.sent == [{"authType": "qr"}]

    await orch.receive({"payload": {"token": "tok1"}})
    await orch.receive({"payload": {"token": "tok2"}})
    assert orch.state.qr_token == "tok2"
    assert orch.state.busy is False


# --------------------------------------------------------------------------- #
# failures                                                                    #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_protocol_error_reaches_sink() -> None:
    orch, _, _, errors, _ = _build()
    await orch.submit(FormValues(phone_number=PHONE))

    await orch.receive({"type": "error", "message": "PHONE_NUMBER_INVALID"})

    assert orch.state.busy is False
    assert orch.state.step is Step.INITIAL
    assert len(errors) == 1
    assert isinstance(errors[0], ProtocolError)
    assert errors[0].detail == "PHONE_NUMBER_INVALID"


@pytest.mark.anyio
async def test_establishment_failure_reported_and_progress_cleared() -> None:
    failure = SessionEstablishmentError(status_code=500)
    orch, _, establisher, errors, progress = _build(establisher=FakeEstablisher(error=failure))

    await orch.receive({"message": "success", "payload": {"session": "s"}})

    assert orch.session_established is False
    assert orch.state.completed is True
    assert orch.state.busy is False
    assert errors == [failure]
    assert progress.events == ["start", "stop"]

    # a later success is still ignored: no automatic retry
    await orch.receive({"message": "success", "payload": {"session": "s"}})
    assert len(establisher.payloads) == 1


@pytest.mark.anyio
async def test_malformed_success_is_reported_not_completed() -> None:
    orch, _, establisher, errors, progress = _build()

    await orch.receive({"message": "success"})

    assert orch.state.completed is False
    assert establisher.payloads == []
    assert progress.events == []
    assert len(errors) == 1


@pytest.mark.anyio
async def test_bad_frames_dropped() -> None:
    orch, *_ = _build()
    before = orch.state

    assert await orch.receive("{not json") is False
    assert await orch.receive({"message": "hello"}) is False
    assert orch.state is before


@pytest.mark.anyio
async def test_send_failure_clears_busy() -> None:
    orch, *_ = _build(channel=FakeChannel(fail=True))

    with pytest.raises(ChannelError):
        await orch.submit(FormValues(phone_number=PHONE))
    assert orch.state.busy is False


# --------------------------------------------------------------------------- #
# run loop                                                                    #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_run_stops_after_completion() -> None:
    orch, channel, establisher, *_ = _build()
    await orch.select_method(AuthMethod.QR)

    state = await orch.run(
        _frames(
            {"payload": {"token": "tok1"}},
            {"message": "success", "payload": {"session": "s"}},
            {"message": "success", "payload": {"session": "again"}},
        )
    )

    assert state.completed is True
    assert establisher.payloads == [{"session": "s"}]
    assert orch.finished is True


@pytest.mark.anyio
async def test_run_clears_busy_when_stream_ends_mid_request() -> None:
    orch, channel, *_ = _build()
    await orch.submit(FormValues(phone_number=PHONE))
    assert orch.state.busy is True

    state = await orch.run(_frames())

    assert orch.finished is True
    assert state.busy is False
    assert orch.state.form.phone_number == PHONE
    assert len(channel.sent) == 1


@pytest.mark.anyio
async def test_wait_for_change_wakes_on_inbound_and_on_end() -> None:
    orch, *_ = _build()
    await orch.select_method(AuthMethod.QR)

    waiter = asyncio.create_task(orch.wait_for_change())
    await asyncio.sleep(0)
    await orch.receive({"payload": {"token": "tok1"}})
    assert (await waiter).qr_token == "tok1"

    waiter = asyncio.create_task(orch.wait_for_change())
    await asyncio.sleep(0)
    await orch.run(_frames())
    await asyncio.wait_for(waiter, timeout=1)
    assert orch.finished is True
