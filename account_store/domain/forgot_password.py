"""Forgotten-password token value type."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True, slots=True)
class ForgotPasswordToken:
    """Either empty (no reset in progress) or active with a token and expiration."""

    token: str = ""
    expiration: datetime | None = None

    @classmethod
    def empty(cls) -> "ForgotPasswordToken":
        return cls()

    @classmethod
    def with_token_and_expiration(cls, token: str, expiration: datetime) -> "ForgotPasswordToken":
        if not token:
            raise ValueError("an active token needs a non-empty token string")
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        # persisted as epoch milliseconds
        expiration = expiration.replace(microsecond=expiration.microsecond // 1000 * 1000)
        return cls(token=token, expiration=expiration)

    def is_empty(self) -> bool:
        return not self.token

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return ``True`` for empty tokens and for tokens past their expiration."""
        if self.is_empty() or self.expiration is None:
            return True
        return self.expiration <= (now or datetime.now(timezone.utc))

    def matches(self, candidate: str) -> bool:
        if self.is_empty() or not candidate:
            return False
        return hmac.compare_digest(self.token.encode("utf-8"), candidate.encode("utf-8"))

    def expiration_millis(self) -> int | None:
        if self.expiration is None:
            return None
        return to_millis(self.expiration)


def to_millis(moment: datetime) -> int:
    """Convert an aware datetime into integer epoch milliseconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = moment - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


def from_millis(value: int | str) -> datetime:
    """Inverse of :func:`to_millis`; accepts the string form some engines return."""
    millis = int(value)
    return datetime.fromtimestamp(millis // 1000, tz=timezone.utc).replace(
        microsecond=(millis % 1000) * 1000
    )
