"""Exception types raised by the login flow core.

Only lightweight, **data-carrying** exceptions live here so that UI/CLI layers
can transform them into notifications or exit codes.  ``to_payload`` never
includes secrets (codes, passwords, tokens).
"""

from __future__ import annotations


class LoginError(RuntimeError):
    """Base class for every failure the login flow reports."""

    kind: str = "login_error"

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.kind, "message": str(self)}


class ValidationError(LoginError, ValueError):
    """User input is malformed; raised before anything reaches the channel."""

    kind = "validation_error"

    def __init__(self, *, field: str, message: str | None = None) -> None:
        super().__init__(message or f"Invalid value for {field}.")
        self.field: str = field

    def to_payload(self) -> dict[str, str]:
        payload = super().to_payload()
        payload["field"] = self.field
        return payload


class InvalidStateError(LoginError):
    """A user action is not applicable to the current method/step."""

    kind = "invalid_state"


class ProtocolError(LoginError):
    """The authority reported a failure over the channel."""

    kind = "protocol_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail or "Authentication failed.")
        self.detail: str = detail


class MessageDecodeError(ProtocolError):
    """An inbound frame could not be decoded into a JSON object."""

    kind = "message_decode_error"


class ChannelError(LoginError):
    """The channel refused an outbound message (closed or broken connection)."""

    kind = "channel_error"


class SessionEstablishmentError(LoginError):
    """The session call did not return a 2xx response."""

    kind = "session_establishment_failed"

    def __init__(self, *, status_code: int | None = None, message: str | None = None) -> None:
        super().__init__(message or "Could not establish a session.")
        self.status_code: int | None = status_code

    def to_payload(self) -> dict[str, str]:
        payload = super().to_payload()
        if self.status_code is not None:
            payload["status_code"] = str(self.status_code)
        return payload
