"""Utility functions related to environment configuration."""

import logging
import os
from dataclasses import dataclass
from typing import Final, Tuple
from urllib.parse import urlsplit

from teldrive_login.login_flow.phone import DEFAULT_REGION

logger = logging.getLogger("teldrive-login.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")

DEFAULT_URL: Final[str] = "http://localhost:8080"
DEFAULT_REDIRECT: Final[str] = "/my-drive"
DEFAULT_SESSION_CACHE_TTL: Final[float] = 300.0
AUTH_WS_PATH: Final[str] = "/api/auth/ws"
LOGIN_PATH: Final[str] = "/api/auth/login"
SESSION_PATH: Final[str] = "/api/auth/session"


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, raw, default)
        return default


def websocket_url(origin: str) -> str:
    """
    Return the auth websocket URL for *origin*.

    ``http`` origins map to ``ws``; anything else maps to ``wss``.  Only the
    host (and port) of *origin* is kept.
    """
    parts = urlsplit(origin)
    if not parts.netloc:
        raise ValueError(f"origin has no host: {origin!r}")
    scheme = "ws" if parts.scheme == "http" else "wss"
    return f"{scheme}://{parts.netloc}{AUTH_WS_PATH}"


@dataclass(frozen=True)
class LoginSettings:
    """
    Settings for one login run, loaded from environment variables.

    The session call and the websocket both target ``url``.
    """

    url: str = DEFAULT_URL
    redirect: str = DEFAULT_REDIRECT
    phone_region: str = DEFAULT_REGION
    tag_exchanges: bool = False
    session_cache_ttl: float = DEFAULT_SESSION_CACHE_TTL

    @property
    def ws_url(self) -> str:
        return websocket_url(self.url)

    @property
    def login_path(self) -> str:
        return LOGIN_PATH

    @property
    def session_path(self) -> str:
        return SESSION_PATH

    @classmethod
    def from_env(cls) -> "LoginSettings":
        """
        Build settings from ``TELDRIVE_*`` variables.

        Unset or empty variables fall back to the defaults.
        """
        settings = cls(
            url=(os.getenv("TELDRIVE_URL") or DEFAULT_URL).rstrip("/"),
            redirect=os.getenv("TELDRIVE_LOGIN_REDIRECT") or DEFAULT_REDIRECT,
            phone_region=(os.getenv("TELDRIVE_PHONE_REGION") or DEFAULT_REGION).upper(),
            tag_exchanges=_truthy(os.getenv("TELDRIVE_TAG_EXCHANGES")),
            session_cache_ttl=_float_env("TELDRIVE_SESSION_CACHE_TTL", DEFAULT_SESSION_CACHE_TTL),
        )
        logger.debug(
            "Loaded login settings url=%s region=%s tag_exchanges=%s",
            settings.url,
            settings.phone_region,
            settings.tag_exchanges,
        )
        return settings
