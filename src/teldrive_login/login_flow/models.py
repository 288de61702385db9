"""Typed, immutable records used by the login flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class AuthMethod(str, Enum):
    """Mutually exclusive ways of signing in; values match the wire ``authType``."""

    PHONE = "phone"
    QR = "qr"


class Step(IntEnum):
    """Ordered progression of the phone flow; QR stays at ``INITIAL``."""

    INITIAL = 1
    CODE_VERIFICATION = 2
    SECOND_FACTOR = 3


@dataclass(frozen=True, slots=True)
class FormValues:
    """Values entered by the user for one ``submit``."""

    phone_number: str = ""
    phone_code: str = field(default="", repr=False)
    password: str = field(default="", repr=False)
    remember: bool = True


@dataclass(frozen=True, slots=True)
class SessionFormState:
    """Fields collected across steps.

    ``phone_code_hash`` is only ever set from an inbound message, never from
    user input.
    """

    phone_number: str = ""
    phone_code_hash: str | None = field(default=None, repr=False)
    phone_code: str = field(default="", repr=False)
    password: str = field(default="", repr=False)
    remember: bool = True


@dataclass(frozen=True, slots=True)
class LoginState:
    """Snapshot of one orchestrator.

    ``completed`` turns true once a well-formed session payload was accepted;
    every later inbound message is ignored.  ``exchange_id`` counts outbound
    messages and only goes to the wire when exchange tagging is enabled.
    """

    method: AuthMethod = AuthMethod.PHONE
    step: Step = Step.INITIAL
    busy: bool = False
    form: SessionFormState = field(default_factory=SessionFormState)
    qr_requested: bool = False
    qr_token: str | None = None
    completed: bool = False
    exchange_id: int = 0

    @property
    def can_switch_method(self) -> bool:
        """The method toggle is offered at every step except the second factor."""
        return not self.completed and self.step is not Step.SECOND_FACTOR

    @property
    def awaiting_user(self) -> bool:
        """True when the next move belongs to the user rather than the server."""
        if self.completed or self.busy:
            return False
        return self.method is AuthMethod.PHONE or self.step is Step.SECOND_FACTOR
