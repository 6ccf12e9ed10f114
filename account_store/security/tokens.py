"""Utilities for issuing forgotten-password tokens."""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from ..config import get_settings
from ..domain.forgot_password import ForgotPasswordToken


def generate_forgot_password_token(
    *, ttl_seconds: int | None = None, now: datetime | None = None
) -> ForgotPasswordToken:
    """Create an active forgotten-password token.

    Parameters
    ----------
    ttl_seconds:
        Lifetime of the token; defaults to ``FORGOT_PASSWORD_TTL_SECONDS``.
    now:
        Reference time used to compute the expiration, mostly for tests.

    Returns
    -------
    ForgotPasswordToken
        An active token carrying a URL-safe random string and its expiration.
    """

    if ttl_seconds is None:
        ttl_seconds = get_settings().forgot_password_ttl_seconds
    issued_at = now or datetime.now(timezone.utc)
    return ForgotPasswordToken.with_token_and_expiration(
        secrets.token_urlsafe(32),
        issued_at + timedelta(seconds=ttl_seconds),
    )


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest for a token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
