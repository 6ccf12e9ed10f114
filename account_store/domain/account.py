from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .uris import uri_for

LOCALE_SEPARATOR = ","


@dataclass(slots=True)
class Account:
    """Aggregate root for a user account stored as a graph node.

    Credential material (``salt`` and ``password_hash``) is read-only for
    ordinary callers. It is written either through :meth:`update_password`
    or, when loading from storage, through :func:`restore_account`.
    """

    username: str = ""
    email: str = ""
    preferred_locales: list[str] = field(default_factory=list)
    _salt: str = field(default="", init=False, repr=False)
    _password_hash: str = field(default="", init=False, repr=False)

    @classmethod
    def with_username(cls, username: str) -> "Account":
        return cls(username=username)

    @classmethod
    def with_email_and_username(cls, email: str, username: str) -> "Account":
        return cls(username=username, email=email)

    @property
    def uri(self) -> str:
        """Canonical identifier of the account node."""
        return uri_for(self.username)

    def id(self) -> str:
        return self.uri

    @property
    def salt(self) -> str:
        return self._salt

    @property
    def password_hash(self) -> str:
        return self._password_hash

    def update_password(self, salt: str, password_hash: str) -> None:
        """Replace the credential pair; hashing happens before this call."""
        self._salt = salt
        self._password_hash = password_hash

    def preferred_locales_as_string(self) -> str:
        return LOCALE_SEPARATOR.join(self.preferred_locales)

    def set_preferred_locales(self, locales: str | Iterable[str] | None) -> None:
        """Accept either the comma-joined storage encoding or a list of tags."""
        if locales is None:
            self.preferred_locales = []
            return
        if isinstance(locales, str):
            locales = locales.split(LOCALE_SEPARATOR)
        self.preferred_locales = [tag.strip() for tag in locales if tag and tag.strip()]


def restore_account(
    *,
    username: str,
    email: str,
    preferred_locales: str | None,
    salt: str | None,
    password_hash: str | None,
) -> Account:
    """Rebuild an account from persisted fields, credentials included.

    Reserved for the storage layer: it is the only path that sets credential
    fields on an account that was not created by the caller.
    """
    account = Account.with_email_and_username(email, username)
    account.set_preferred_locales(preferred_locales)
    account._salt = salt or ""
    account._password_hash = password_hash or ""
    return account
