"""Account persistence on top of an indexed query engine."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .domain.account import Account, restore_account
from .domain.errors import ExistingUserError, NonExistingUserError
from .domain.forgot_password import ForgotPasswordToken, from_millis, to_millis
from .domain.uris import base_uri, uri_for, username_from
from .engine.base import TYPE_FIELD, IndexLookup, QueryEngine, UniqueConstraintViolation

logger = logging.getLogger(__name__)

USER_TYPE = "user"


class Props:
    """Property names of a user node."""

    type = TYPE_FIELD
    uri = "uri"
    username = "username"
    email = "email"
    preferred_locales = "preferredLocales"
    creation_date = "creationDate"
    update_time = "updateTime"
    salt = "salt"
    password_hash = "passwordHash"
    forget_password_token = "forgetPasswordToken"
    change_password_expiration_date = "changePasswordExpirationDate"


ACCOUNT_FIELDS: tuple[str, ...] = (
    Props.uri,
    Props.email,
    Props.preferred_locales,
    Props.salt,
    Props.password_hash,
)


class AccountRepository:
    """Materialises, queries and mutates user accounts stored as graph nodes.

    Holds no state besides the engine handle, so it is as thread-safe as the
    engine it wraps.
    """

    def __init__(
        self,
        engine: QueryEngine,
        *,
        username_generator: Optional[Callable[[Account], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Store the query engine and optional collaborators."""
        self._engine = engine
        self._username_generator = username_generator
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def create_user(self, account: Account) -> Account:
        """Persist a new account after checking email and username uniqueness.

        Raises
        ------
        ExistingUserError
            When the email or the username is already taken, including the
            case where a concurrent writer claims it between check and write.
        """
        if not account.username.strip():
            if self._username_generator is None:
                raise ValueError("username is required when no username generator is configured")
            account.username = self._username_generator(account)
        account.email = account.email.strip()

        if self.email_exists(account.email):
            logger.info("rejecting account creation, email already used")
            raise ExistingUserError(account.email)
        if self.username_exists(account.username):
            logger.info("rejecting account creation, username %s already used", account.username)
            raise ExistingUserError(account.username)

        now = to_millis(self._clock())
        try:
            self._engine.create_node(
                {
                    Props.type: USER_TYPE,
                    Props.uri: account.uri,
                    Props.username: account.username,
                    Props.email: account.email,
                    Props.preferred_locales: account.preferred_locales_as_string(),
                    Props.creation_date: now,
                    Props.update_time: now,
                    Props.salt: account.salt,
                    Props.password_hash: account.password_hash,
                    Props.forget_password_token: "",
                    Props.change_password_expiration_date: "",
                }
            )
        except UniqueConstraintViolation as exc:
            logger.warning("unique index %s rejected account creation", exc.index)
            identifier = account.email if exc.index == Props.email else account.username
            raise ExistingUserError(identifier) from exc
        return account

    def find_by_username(self, username: str) -> Account:
        lookup = IndexLookup(Props.uri, uri_for(username))
        return self._account_from_rows(self._engine.fetch(lookup, ACCOUNT_FIELDS), username)

    def find_by_email(self, email: str) -> Account:
        email = email.strip()
        if not email:
            raise NonExistingUserError("")
        lookup = IndexLookup(Props.email, email)
        return self._account_from_rows(self._engine.fetch(lookup, ACCOUNT_FIELDS), email)

    def username_exists(self, username: str) -> bool:
        if not username.strip():
            return False
        return self._engine.exists(IndexLookup(Props.uri, uri_for(username)))

    def email_exists(self, email: str) -> bool:
        email = email.strip()
        if not email:
            return False
        return self._engine.count(IndexLookup(Props.email, email)) != 0

    def generate_forget_password_token(self, account: Account, token: ForgotPasswordToken) -> None:
        """Store an active reset token on the account node."""
        expiration = token.expiration_millis()
        updated = self._engine.set_properties(
            IndexLookup(Props.uri, uri_for(account.username)),
            {
                Props.forget_password_token: token.token,
                Props.change_password_expiration_date: "" if expiration is None else expiration,
            },
        )
        if not updated:
            raise NonExistingUserError(account.username)

    def get_user_forget_password_token(self, account: Account) -> ForgotPasswordToken:
        rows = self._engine.fetch(
            IndexLookup(Props.uri, uri_for(account.username)),
            (Props.forget_password_token, Props.change_password_expiration_date),
        )
        row = self._single_row(rows, account.username)
        token = row.get(Props.forget_password_token)
        if not token or not str(token).strip():
            return ForgotPasswordToken.empty()
        return ForgotPasswordToken.with_token_and_expiration(
            str(token),
            from_millis(row[Props.change_password_expiration_date]),
        )

    def change_password(self, account: Account) -> None:
        """Write the new credentials and invalidate any pending reset token."""
        updated = self._engine.set_properties(
            IndexLookup(Props.uri, uri_for(account.username)),
            {
                Props.salt: account.salt,
                Props.password_hash: account.password_hash,
                Props.update_time: to_millis(self._clock()),
                Props.forget_password_token: "",
                Props.change_password_expiration_date: "",
            },
        )
        if not updated:
            raise NonExistingUserError(account.username)

    def update_preferred_locales(self, account: Account) -> None:
        self._engine.set_properties(
            IndexLookup(Props.uri, account.id()),
            {Props.preferred_locales: account.preferred_locales_as_string()},
        )

    def search_users(
        self,
        search_term: str,
        requesting_account: Account | None = None,
        *,
        exclude_requester: bool = False,
    ) -> list[Account]:
        """Return accounts whose username starts with ``search_term``.

        Results only carry the username. A blank term matches every user. The
        requesting account is left in the results unless ``exclude_requester``
        is set.
        """
        rows = self._engine.fetch(
            IndexLookup(Props.uri, base_uri() + search_term, prefix=True, node_type=USER_TYPE),
            (Props.uri,),
        )
        excluded = requesting_account.username if exclude_requester and requesting_account else None
        seen: set[str] = set()
        accounts: list[Account] = []
        for row in rows:
            username = username_from(str(row[Props.uri]))
            if username in seen or username == excluded:
                continue
            seen.add(username)
            accounts.append(Account.with_username(username))
        return accounts

    def _account_from_rows(self, rows: list[dict[str, Any]], identifier: str) -> Account:
        row = self._single_row(rows, identifier)
        return restore_account(
            username=username_from(str(row[Props.uri])),
            email=row.get(Props.email) or "",
            preferred_locales=row.get(Props.preferred_locales),
            salt=row.get(Props.salt),
            password_hash=row.get(Props.password_hash),
        )

    def _single_row(self, rows: list[dict[str, Any]], identifier: str) -> dict[str, Any]:
        if not rows:
            raise NonExistingUserError(identifier)
        if len(rows) > 1:
            logger.warning(
                "index returned %d user nodes for %s, using the first one", len(rows), identifier
            )
        return rows[0]
