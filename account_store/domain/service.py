"""Forgotten-password workflow orchestrated on top of the account repository."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from ..security.tokens import generate_forgot_password_token, hash_token
from .account import Account
from .errors import InvalidResetTokenError
from .forgot_password import ForgotPasswordToken

if TYPE_CHECKING:
    from ..repository import AccountRepository

logger = logging.getLogger(__name__)


class PasswordResetService:
    """Issues reset tokens and exchanges them for new credentials."""

    def __init__(
        self,
        repository: AccountRepository,
        *,
        ttl_seconds: int | None = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Store the repository and the token policy."""
        self._repository = repository
        self._ttl_seconds = ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def request_reset(self, email: str) -> tuple[Account, ForgotPasswordToken]:
        """Issue a reset token for the account owning ``email``.

        Raises :class:`~account_store.domain.errors.NonExistingUserError` when
        no account uses the address.
        """
        account = self._repository.find_by_email(email)
        token = generate_forgot_password_token(ttl_seconds=self._ttl_seconds, now=self._clock())
        self._repository.generate_forget_password_token(account, token)
        logger.info(
            "issued password reset token %s for %s",
            hash_token(token.token)[:12],
            account.username,
        )
        return account, token

    def reset_password(self, username: str, token: str, *, salt: str, password_hash: str) -> Account:
        """Replace the credentials of ``username`` if ``token`` is the active reset token.

        Parameters
        ----------
        username:
            Owner of the reset token.
        token:
            Token string previously returned by :meth:`request_reset`.
        salt, password_hash:
            New credential pair, already computed by the caller.
        """
        account = self._repository.find_by_username(username)
        stored = self._repository.get_user_forget_password_token(account)
        if stored.is_empty():
            raise InvalidResetTokenError("no password reset in progress")
        if not stored.matches(token):
            raise InvalidResetTokenError("reset token does not match")
        if stored.is_expired(self._clock()):
            raise InvalidResetTokenError("reset token expired")

        account.update_password(salt, password_hash)
        self._repository.change_password(account)
        logger.info("password reset completed for %s", account.username)
        return account
