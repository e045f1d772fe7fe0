"""
Single shared-secret password gate.

A successful login stores the SHA-256 hex digest of the configured password in the
``workshop-auth`` cookie.  Protected routes compare that cookie against the digest.
"""

import hashlib
import hmac
import logging
from functools import lru_cache
from typing import Optional

from fastapi import (
    Depends,
    Request,
)

from workshop_portal.config import (
    Settings,
    get_settings,
)
from workshop_portal.errors import (
    AuthenticationRequired,
    PasswordNotConfigured,
)

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "workshop-auth"
AUTH_COOKIE_MAX_AGE = 60 * 60 * 12


def _sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def is_password_configured(settings: Settings) -> bool:
    """True when a non-blank portal password is set."""
    return bool(settings.WORKSHOP_PORTAL_PASSWORD and settings.WORKSHOP_PORTAL_PASSWORD.strip())


@lru_cache(maxsize=1)
def _digest_of_secret(secret: str) -> str:
    # Computed once per configured secret for the life of the process
    return _sha256_hex(secret)


def get_password_digest(settings: Settings) -> str:
    """Digest of the configured password."""
    if not is_password_configured(settings):
        raise PasswordNotConfigured("Portal password is not configured.")
    return _digest_of_secret(settings.WORKSHOP_PORTAL_PASSWORD.strip())  # type: ignore[union-attr]


def hash_password_candidate(candidate: str) -> str:
    """Digest of a login attempt (trimmed, like the configured password)."""
    return _sha256_hex(candidate.strip())


def digests_match(expected: str, provided: Optional[str]) -> bool:
    """Constant-time comparison of two hex digests."""
    return bool(provided) and hmac.compare_digest(expected, provided)  # type: ignore[arg-type]


def require_auth(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """
    FastAPI dependency guarding every protected route.

    Raises
    ------
    PasswordNotConfigured
        If the portal has no password (503).
    AuthenticationRequired
        If the cookie is missing or stale (401); a stale cookie is also cleared.
    """
    expected = get_password_digest(settings)
    cookie = request.cookies.get(AUTH_COOKIE_NAME)
    if not cookie:
        raise AuthenticationRequired()
    if not digests_match(expected, cookie):
        logger.info("Rejected request with stale auth cookie on %s", request.url.path)
        raise AuthenticationRequired(clear_cookie=True)
