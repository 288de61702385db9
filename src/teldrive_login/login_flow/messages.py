"""Wire codec for the authentication channel.

Outbound messages are JSON objects keyed by ``authType``::

    {"authType": "qr"}
    {"authType": "phone", "message": "sendcode", "phoneNo": "+14155550100"}
    {"authType": "phone", "message": "signin", "phoneNo": ..., "phoneCode": ..., "phoneCodeHash": ...}
    {"authType": "2fa", "password": ...}

Inbound frames carry no explicit tag for every kind, so :func:`parse_inbound`
classifies them by field and payload shape.  Each frame maps to exactly one
message kind, checked in this order:

1. ``type == "error"``           → :class:`ErrorReported`
2. ``message == "success"``      → :class:`SessionIssued`
3. ``message == "2FA required"`` → :class:`SecondFactorRequired`
4. ``payload.phoneCodeHash``     → :class:`CodeHashIssued`
5. ``payload.token``             → :class:`QrTokenIssued`

Anything else yields ``None``.

When exchange tagging is enabled an ``exchangeId`` integer is attached to
outbound messages and read back from inbound frames that echo it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Final, Mapping, Union

from teldrive_login.login_flow.errors import MessageDecodeError
from teldrive_login.login_flow.models import AuthMethod

SUCCESS: Final[str] = "success"
SECOND_FACTOR_REQUIRED: Final[str] = "2FA required"
SEND_CODE: Final[str] = "sendcode"
SIGN_IN: Final[str] = "signin"
SECOND_FACTOR_AUTH_TYPE: Final[str] = "2fa"
EXCHANGE_ID_KEY: Final[str] = "exchangeId"


# --------------------------------------------------------------------------- #
# Outbound                                                                    #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class RequestQr:
    def to_wire(self) -> dict[str, Any]:
        return {"authType": AuthMethod.QR.value}


@dataclass(frozen=True, slots=True)
class RequestCode:
    phone_number: str
    method: AuthMethod = AuthMethod.PHONE

    def to_wire(self) -> dict[str, Any]:
        return {
            "authType": self.method.value,
            "message": SEND_CODE,
            "phoneNo": self.phone_number,
        }


@dataclass(frozen=True, slots=True)
class SubmitCode:
    phone_number: str
    phone_code: str
    phone_code_hash: str
    method: AuthMethod = AuthMethod.PHONE

    def to_wire(self) -> dict[str, Any]:
        return {
            "authType": self.method.value,
            "message": SIGN_IN,
            "phoneNo": self.phone_number,
            "phoneCode": self.phone_code,
            "phoneCodeHash": self.phone_code_hash,
        }


@dataclass(frozen=True, slots=True)
class SubmitSecondFactor:
    password: str = field(repr=False)

    def to_wire(self) -> dict[str, Any]:
        return {"authType": SECOND_FACTOR_AUTH_TYPE, "password": self.password}


OutboundMessage = Union[RequestQr, RequestCode, SubmitCode, SubmitSecondFactor]


def encode_outbound(message: OutboundMessage, *, exchange_id: int | None = None) -> dict[str, Any]:
    """Return the JSON-ready dict for *message*, tagged when *exchange_id* is given."""
    wire = message.to_wire()
    if exchange_id is not None:
        wire[EXCHANGE_ID_KEY] = exchange_id
    return wire


# --------------------------------------------------------------------------- #
# Inbound                                                                     #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class SessionIssued:
    kind: ClassVar[str] = "session_issued"

    payload: Any = field(repr=False)
    exchange_id: int | None = None


@dataclass(frozen=True, slots=True)
class CodeHashIssued:
    kind: ClassVar[str] = "code_hash_issued"

    phone_code_hash: str = field(repr=False)
    exchange_id: int | None = None


@dataclass(frozen=True, slots=True)
class SecondFactorRequired:
    kind: ClassVar[str] = "second_factor_required"

    exchange_id: int | None = None


@dataclass(frozen=True, slots=True)
class QrTokenIssued:
    kind: ClassVar[str] = "qr_token_issued"

    token: str = field(repr=False)
    exchange_id: int | None = None


@dataclass(frozen=True, slots=True)
class ErrorReported:
    kind: ClassVar[str] = "error"

    detail: str
    exchange_id: int | None = None


InboundMessage = Union[
    SessionIssued, CodeHashIssued, SecondFactorRequired, QrTokenIssued, ErrorReported
]


def _decode(frame: str | bytes | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(frame, Mapping):
        return frame
    try:
        data = json.loads(frame)
    except (ValueError, TypeError):
        raise MessageDecodeError("inbound frame is not valid JSON") from None
    if not isinstance(data, dict):
        raise MessageDecodeError("inbound frame is not a JSON object")
    return data


def _exchange_id(data: Mapping[str, Any]) -> int | None:
    value = data.get(EXCHANGE_ID_KEY)
    # bool is an int subclass; never treat it as an id
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def parse_inbound(frame: str | bytes | Mapping[str, Any]) -> InboundMessage | None:
    """Classify one inbound frame.

    Parameters
    ----------
    frame:
        Raw text/bytes as received from the channel, or an already decoded
        mapping.

    Returns
    -------
    InboundMessage | None
        The single message kind the frame maps to, or ``None`` when the shape
        is not recognised.

    Raises
    ------
    MessageDecodeError
        If the frame is not a JSON object.
    """
    data = _decode(frame)
    exchange_id = _exchange_id(data)
    message = data.get("message")

    if data.get("type") == "error":
        detail = message if isinstance(message, str) else ""
        return ErrorReported(detail=detail, exchange_id=exchange_id)

    if message == SUCCESS:
        return SessionIssued(payload=data.get("payload"), exchange_id=exchange_id)

    if message == SECOND_FACTOR_REQUIRED:
        return SecondFactorRequired(exchange_id=exchange_id)

    payload = data.get("payload")
    if isinstance(payload, Mapping):
        phone_code_hash = payload.get("phoneCodeHash")
        if isinstance(phone_code_hash, str) and phone_code_hash:
            return CodeHashIssued(phone_code_hash=phone_code_hash, exchange_id=exchange_id)
        token = payload.get("token")
        if isinstance(token, str) and token:
            return QrTokenIssued(token=token, exchange_id=exchange_id)

    return None
