"""Error taxonomy raised by the account store."""

from __future__ import annotations


class AccountStoreError(Exception):
    """Base class for every error raised by the account store."""


class ExistingUserError(AccountStoreError, ValueError):
    """Creating the account would duplicate an existing username or email."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"user already exists: {identifier}")
        self.identifier = identifier


class NonExistingUserError(AccountStoreError, LookupError):
    """A lookup that must resolve an account returned nothing."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"user not found: {identifier}")
        self.identifier = identifier


class EngineFailure(AccountStoreError):
    """The query engine failed to execute a query (connection, syntax, backend)."""


class InvalidResetTokenError(AccountStoreError, ValueError):
    """A forgotten-password token is empty, does not match, or has expired."""
