"""Pure transition function of the login state machine.

``transition(state, event)`` returns the next :class:`LoginState` together with
the side effects the caller must perform, expressed as data:

- :class:`Send` – write an outbound message to the channel
- :class:`EstablishSession` – hand a success payload to the session collaborator
- :class:`ReportError` – surface a failure on the user-facing error channel

Nothing here performs I/O, so any sequence of events can be replayed
deterministically with :func:`replay`.

User events that do not apply (submit while busy, submit in QR mode) and
inbound messages that do not fit the current method/step are *ignored*: the
state is returned unchanged together with a human-readable ``ignored`` reason
that the orchestrator logs.  Malformed user input raises
:class:`~teldrive_login.login_flow.errors.ValidationError`; actions that are
impossible in the current state raise
:class:`~teldrive_login.login_flow.errors.InvalidStateError`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, Union

from teldrive_login.login_flow.errors import (
    InvalidStateError,
    LoginError,
    ProtocolError,
    ValidationError,
)
from teldrive_login.login_flow.messages import (
    CodeHashIssued,
    ErrorReported,
    InboundMessage,
    OutboundMessage,
    QrTokenIssued,
    RequestCode,
    RequestQr,
    SecondFactorRequired,
    SessionIssued,
    SubmitCode,
    SubmitSecondFactor,
)
from teldrive_login.login_flow.models import (
    AuthMethod,
    FormValues,
    LoginState,
    SessionFormState,
    Step,
)
from teldrive_login.login_flow.phone import DEFAULT_REGION, normalize_phone_number


# --------------------------------------------------------------------------- #
# Events                                                                      #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class SelectMethod:
    method: AuthMethod


@dataclass(frozen=True, slots=True)
class Submit:
    values: FormValues


@dataclass(frozen=True, slots=True)
class Received:
    message: InboundMessage


Event = Union[SelectMethod, Submit, Received]


# --------------------------------------------------------------------------- #
# Effects                                                                     #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class Send:
    message: OutboundMessage
    exchange_id: int


@dataclass(frozen=True, slots=True)
class EstablishSession:
    payload: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class ReportError:
    error: LoginError


Effect = Union[Send, EstablishSession, ReportError]


@dataclass(frozen=True, slots=True)
class TransitionOptions:
    default_region: str = DEFAULT_REGION
    tag_exchanges: bool = False


@dataclass(frozen=True, slots=True)
class Transition:
    state: LoginState
    effects: tuple[Effect, ...] = ()
    ignored: str | None = None


_DEFAULT_OPTIONS = TransitionOptions()


def _send(state: LoginState, message: OutboundMessage, **changes: Any) -> Transition:
    exchange_id = state.exchange_id + 1
    new_state = replace(state, exchange_id=exchange_id, **changes)
    return Transition(new_state, (Send(message, exchange_id),))


def _ignore(state: LoginState, reason: str) -> Transition:
    return Transition(state, ignored=reason)


# --------------------------------------------------------------------------- #
# User events                                                                 #
# --------------------------------------------------------------------------- #
def _select_method(state: LoginState, method: AuthMethod) -> Transition:
    if state.completed:
        return _ignore(state, "login already completed")
    if method is state.method:
        return _ignore(state, f"method {method.value} already active")
    if state.step is Step.SECOND_FACTOR:
        raise InvalidStateError("Cannot switch login method during second factor.")

    reset = replace(
        state,
        method=method,
        step=Step.INITIAL,
        busy=False,
        form=SessionFormState(),
        qr_token=None,
    )
    if method is AuthMethod.QR and not state.qr_requested:
        return _send(reset, RequestQr(), qr_requested=True)
    return Transition(reset)


def _submit(state: LoginState, values: FormValues, options: TransitionOptions) -> Transition:
    if state.completed:
        return _ignore(state, "login already completed")
    if state.busy:
        return _ignore(state, "a request is already in flight")

    if state.step is Step.SECOND_FACTOR:
        if not values.password:
            raise ValidationError(field="password", message="Password is required.")
        form = replace(state.form, password=values.password)
        return _send(state, SubmitSecondFactor(values.password), busy=True, form=form)

    if state.method is AuthMethod.QR:
        return _ignore(state, "submit is not available while waiting for a QR login")

    if state.step is Step.INITIAL:
        phone_number = normalize_phone_number(
            values.phone_number, default_region=options.default_region
        )
        form = replace(state.form, phone_number=phone_number, remember=values.remember)
        return _send(state, RequestCode(phone_number), busy=True, form=form)

    # Step.CODE_VERIFICATION
    phone_code_hash = state.form.phone_code_hash
    if not phone_code_hash or not state.form.phone_number:
        raise InvalidStateError("No login code has been issued yet.")
    phone_code = values.phone_code.strip()
    if not phone_code:
        raise ValidationError(field="phone_code", message="Code is required.")
    form = replace(state.form, phone_code=phone_code)
    message = SubmitCode(state.form.phone_number, phone_code, phone_code_hash)
    return _send(state, message, busy=True, form=form)


# --------------------------------------------------------------------------- #
# Inbound messages                                                            #
# --------------------------------------------------------------------------- #
# replies paired with one request; QR pushes and success are unsolicited
_PAIRED_REPLIES = (CodeHashIssued, SecondFactorRequired, ErrorReported)


def _is_stale(state: LoginState, message: InboundMessage, options: TransitionOptions) -> bool:
    if not options.tag_exchanges or message.exchange_id is None:
        return False
    if not isinstance(message, _PAIRED_REPLIES):
        return False
    return message.exchange_id < state.exchange_id


def _received(state: LoginState, message: InboundMessage, options: TransitionOptions) -> Transition:
    if state.completed:
        return _ignore(state, f"{message.kind} after login completed")
    if _is_stale(state, message, options):
        return _ignore(
            state,
            f"{message.kind} for exchange {message.exchange_id} "
            f"(current {state.exchange_id})",
        )

    if isinstance(message, SessionIssued):
        payload = message.payload
        if not isinstance(payload, Mapping) or not payload:
            error = ProtocolError("Login succeeded but the session payload is malformed.")
            return Transition(replace(state, busy=False), (ReportError(error),))
        done = replace(state, busy=False, completed=True, form=SessionFormState())
        return Transition(done, (EstablishSession(payload),))

    if isinstance(message, CodeHashIssued):
        if state.method is not AuthMethod.PHONE:
            return _ignore(state, f"{message.kind} while method is {state.method.value}")
        if state.step is Step.SECOND_FACTOR:
            return _ignore(state, f"{message.kind} during second factor")
        if not state.form.phone_number:
            return _ignore(state, f"{message.kind} without a phone number on file")
        if state.step is Step.INITIAL and not state.busy:
            return _ignore(state, f"{message.kind} with no code request in flight")
        form = replace(state.form, phone_code_hash=message.phone_code_hash)
        return Transition(
            replace(state, form=form, step=Step.CODE_VERIFICATION, busy=False)
        )

    if isinstance(message, SecondFactorRequired):
        if state.method is AuthMethod.PHONE and state.step is Step.INITIAL:
            return _ignore(state, f"{message.kind} before a code was submitted")
        return Transition(replace(state, step=Step.SECOND_FACTOR, busy=False))

    if isinstance(message, QrTokenIssued):
        if state.method is not AuthMethod.QR:
            return _ignore(state, f"{message.kind} while method is {state.method.value}")
        return Transition(replace(state, qr_token=message.token))

    if isinstance(message, ErrorReported):
        return Transition(
            replace(state, busy=False), (ReportError(ProtocolError(message.detail)),)
        )

    raise TypeError(f"unsupported inbound message {message!r}")


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #
def transition(
    state: LoginState,
    event: Event,
    options: TransitionOptions = _DEFAULT_OPTIONS,
) -> Transition:
    """Apply *event* to *state*.

    Parameters
    ----------
    state:
        Current snapshot; never mutated.
    event:
        A user action (:class:`SelectMethod`, :class:`Submit`) or an inbound
        message (:class:`Received`).
    options:
        Phone region and exchange tagging settings.

    Returns
    -------
    Transition
        The next state, the effects to execute in order, and an ``ignored``
        reason when the event did not apply.

    Raises
    ------
    ValidationError
        If submitted values are malformed.
    InvalidStateError
        If the user action is impossible in the current state.
    """
    if isinstance(event, SelectMethod):
        return _select_method(state, event.method)
    if isinstance(event, Submit):
        return _submit(state, event.values, options)
    if isinstance(event, Received):
        return _received(state, event.message, options)
    raise TypeError(f"unsupported event {event!r}")


def replay(
    events: Iterable[Event],
    state: LoginState | None = None,
    options: TransitionOptions = _DEFAULT_OPTIONS,
) -> tuple[LoginState, list[Effect]]:
    """Fold *events* over *state* and collect every effect in order."""
    current = state or LoginState()
    effects: list[Effect] = []
    for event in events:
        result = transition(current, event, options)
        current = result.state
        effects.extend(result.effects)
    return current, effects
