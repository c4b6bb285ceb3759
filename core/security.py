"""
Anti-forgery (CSRF) token utilities: per-client secret, salted HMAC tokens,
and cookie attributes by deployment mode.
"""

import base64
import hashlib
import hmac
import secrets
from typing import Any

from core.config import Settings

SAFE_METHODS = frozenset(("GET", "HEAD", "OPTIONS"))
TOKEN_HEADERS = ("csrf-token", "xsrf-token", "x-csrf-token", "x-xsrf-token")
TOKEN_QUERY_PARAM = "_csrf"
XSRF_COOKIE_NAME = "XSRF-TOKEN"

_SALT_BYTES = 8
_SECRET_BYTES = 18


def create_secret() -> str:
    return secrets.token_urlsafe(_SECRET_BYTES)


def create_token(secret: str, salt: str | None = None) -> str:
    """Token is ``<salt>.<digest>``; a fresh salt per call keeps tokens unlinkable."""
    salt = salt or secrets.token_urlsafe(_SALT_BYTES)
    return f"{salt}.{_digest(secret, salt)}"


def verify_token(secret: str | None, token: str | None) -> bool:
    """Constant-time check of a token against the cookie secret."""
    if not secret or not token or not isinstance(token, str):
        return False
    salt, sep, digest = token.partition(".")
    if not sep or not salt or not digest:
        return False
    return hmac.compare_digest(digest.encode(), _digest(secret, salt).encode())


def extract_token(headers: Any, query_params: Any) -> str | None:
    """Find the submitted token: known headers first, then the ``_csrf`` query param."""
    for name in TOKEN_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return query_params.get(TOKEN_QUERY_PARAM) or None


def secret_cookie_options(settings: Settings) -> dict[str, Any]:
    """
    Attributes for the secret cookie. httponly always; secure and SameSite=Lax
    only in production (SameSite is omitted elsewhere).
    """
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax" if settings.is_production else None,
        "path": "/",
    }


def token_cookie_options(settings: Settings) -> dict[str, Any]:
    """The readable XSRF-TOKEN cookie mirrors the secret cookie, minus httponly."""
    options = secret_cookie_options(settings)
    options["httponly"] = False
    return options


def _digest(secret: str, salt: str) -> str:
    mac = hmac.new(secret.encode(), salt.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(mac).rstrip(b"=").decode()
