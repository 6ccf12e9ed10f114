"""Account DTOs shared with upstream layers."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from ..domain.account import Account


class AccountProfile(BaseModel):
    """Public projection of an account; never carries credential material."""

    username: str
    uri: str
    email: EmailStr | None = None
    preferred_locales: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, account: Account) -> "AccountProfile":
        """Build a profile from the domain aggregate."""
        return cls(
            username=account.username,
            uri=account.uri,
            email=account.email or None,
            preferred_locales=list(account.preferred_locales),
        )
