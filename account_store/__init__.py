"""Account persistence on an auto-indexed graph node store."""

from .domain.account import Account
from .domain.errors import (
    AccountStoreError,
    EngineFailure,
    ExistingUserError,
    InvalidResetTokenError,
    NonExistingUserError,
)
from .domain.forgot_password import ForgotPasswordToken
from .main import open_account_repository
from .repository import AccountRepository

__all__ = [
    "Account",
    "AccountRepository",
    "AccountStoreError",
    "EngineFailure",
    "ExistingUserError",
    "ForgotPasswordToken",
    "InvalidResetTokenError",
    "NonExistingUserError",
    "open_account_repository",
]
