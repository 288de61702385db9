"""Login flow core package.

This namespace hosts the **transport-agnostic** building blocks of the
phone / QR login handshake.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
models
    Immutable dataclasses for methods, steps, form values and state snapshots.
messages
    Wire codec for outbound requests and inbound pushes.
phone
    Phone number validation / E.164 normalisation.
transitions
    Pure ``(state, event) -> (state', effects)`` state machine.
orchestrator
    Async driver executing effects against injected collaborators.
errors
    Exception types used by the login flow.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock  # noqa: F401
from .errors import (  # noqa: F401
    ChannelError,
    InvalidStateError,
    LoginError,
    MessageDecodeError,
    ProtocolError,
    SessionEstablishmentError,
    ValidationError,
)
from .log_utils import get_login_logger, mask_sensitive  # noqa: F401
from .messages import encode_outbound, parse_inbound  # noqa: F401
from .models import AuthMethod, FormValues, LoginState, SessionFormState, Step  # noqa: F401
from .orchestrator import AuthOrchestrator  # noqa: F401
from .phone import normalize_phone_number  # noqa: F401
from .transitions import TransitionOptions, replay, transition  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    # errors
    "ChannelError",
    "InvalidStateError",
    "LoginError",
    "MessageDecodeError",
    "ProtocolError",
    "SessionEstablishmentError",
    "ValidationError",
    # logging helpers
    "get_login_logger",
    "mask_sensitive",
    # wire codec
    "encode_outbound",
    "parse_inbound",
    # models
    "AuthMethod",
    "FormValues",
    "LoginState",
    "SessionFormState",
    "Step",
    # state machine
    "AuthOrchestrator",
    "TransitionOptions",
    "normalize_phone_number",
    "replay",
    "transition",
]
