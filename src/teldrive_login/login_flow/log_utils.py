"""Structured logging helpers for the login flow.

This module purposefully restricts **which** contextual attributes are attached
to log records in order to avoid accidentally leaking secrets.  All helpers
ONLY inject the following *non-sensitive* fields:

- ``login_id``       – Identifier of one orchestrator instance (first 6 chars kept)
- ``method``         – Active authentication method (``phone`` / ``qr``)
- ``correlation_id`` – Current exchange id when exchange tagging is enabled

Phone numbers go through :func:`mask_sensitive` before being logged.  Codes,
passwords, continuation tokens, QR tokens and session payloads are never
passed to a logger.

Usage
-----
>>> from teldrive_login.login_flow.log_utils import get_login_logger
>>> log = get_login_logger(
...     base_logger_name="teldrive-login.login_flow.orchestrator",
...     login_id="3f2c9a7b41d04c3e",
...     method="phone",
... )
>>> log.info("Requested login code")
INFO teldrive-login.login_flow.orchestrator login_id=3f2c9a method=phone ...
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping


def mask_sensitive(value: str | None, keep: int = 4) -> str:
    """Return *value* with everything but the last *keep* characters masked."""
    if not value:
        return ""
    if len(value) <= keep:
        return "*" * len(value)
    return "*" * (len(value) - keep) + value[-keep:]


class _LoginLoggerAdapter(logging.LoggerAdapter):
    """Inject whitelisted login context into log records."""

    extra_keys = ("login_id", "method", "correlation_id")

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        extra_clean: MutableMapping[str, Any] = {}
        for k in self.extra_keys:
            if k == "login_id" and extra and extra.get("login_id"):
                extra_clean[k] = str(extra["login_id"])[:6]
            elif extra and k in extra and extra[k] is not None:
                extra_clean[k] = extra[k]
        super().__init__(logger, extra_clean)

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        if "extra" not in kwargs or kwargs["extra"] is None:
            kwargs["extra"] = {}
        # merge but do not overwrite call-site provided extras
        for k, v in self.extra.items():
            kwargs["extra"].setdefault(k, v)
        return msg, kwargs


def get_login_logger(
    *,
    base_logger_name: str = "teldrive-login.login_flow",
    login_id: str | None = None,
    method: str | None = None,
    correlation_id: str | None = None,
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter pre-filled with login context."""
    logger = logging.getLogger(base_logger_name)
    return _LoginLoggerAdapter(
        logger,
        {
            "login_id": login_id,
            "method": method,
            "correlation_id": correlation_id,
        },
    )
