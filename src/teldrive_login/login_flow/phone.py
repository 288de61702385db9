"""Phone number validation for the first step of the phone flow."""

from __future__ import annotations

from typing import Final

import phonenumbers

from teldrive_login.login_flow.errors import ValidationError

DEFAULT_REGION: Final[str] = "IN"


def normalize_phone_number(raw: str, *, default_region: str = DEFAULT_REGION) -> str:
    """Validate *raw* and return it in E.164 form.

    Numbers written without a leading ``+`` are read as national numbers of
    *default_region*.

    Raises
    ------
    ValidationError
        If the number is empty, cannot be parsed or is not a valid number.
    """
    text = (raw or "").strip()
    if not text:
        raise ValidationError(field="phone_number", message="Phone number is required.")
    try:
        parsed = phonenumbers.parse(text, default_region.upper())
    except phonenumbers.NumberParseException:
        raise ValidationError(field="phone_number", message="Tel is invalid.") from None
    if not phonenumbers.is_valid_number(parsed):
        raise ValidationError(field="phone_number", message="Tel is invalid.")
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
