from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone

import fakeredis
import pytest

from account_store.domain.account import Account
from account_store.engine.base import QueryEngine
from account_store.engine.memory_engine import InMemoryQueryEngine
from account_store.engine.redis_engine import RedisQueryEngine
from account_store.repository import AccountRepository

FIXED_NOW = datetime(2026, 3, 1, 12, 30, 45, 123000, tzinfo=timezone.utc)


class CountingEngine(QueryEngine):
    """Delegating engine recording how often each operation reaches the backend."""

    def __init__(self, inner: QueryEngine) -> None:
        self.inner = inner
        self.calls: Counter[str] = Counter()

    def fetch(self, lookup, fields):
        self.calls["fetch"] += 1
        return self.inner.fetch(lookup, fields)

    def exists(self, lookup):
        self.calls["exists"] += 1
        return self.inner.exists(lookup)

    def count(self, lookup):
        self.calls["count"] += 1
        return self.inner.count(lookup)

    def create_node(self, properties):
        self.calls["create_node"] += 1
        return self.inner.create_node(properties)

    def set_properties(self, lookup, properties):
        self.calls["set_properties"] += 1
        return self.inner.set_properties(lookup, properties)

    @property
    def total(self) -> int:
        return sum(self.calls.values())


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


@pytest.fixture(params=["memory", "redis"])
def engine(request, redis_client) -> CountingEngine:
    """Every repository behaviour runs against each in-process backend."""
    if request.param == "redis":
        inner: QueryEngine = RedisQueryEngine(redis_client, key_prefix="test")
    else:
        inner = InMemoryQueryEngine()
    return CountingEngine(inner)


@pytest.fixture()
def repository(engine) -> AccountRepository:
    return AccountRepository(engine, clock=lambda: FIXED_NOW)


def _make_account(username: str, email: str, *, locales=("fr", "en")) -> Account:
    account = Account.with_email_and_username(email, username)
    account.set_preferred_locales(list(locales))
    account.update_password(f"salt-{username}", f"hash-{username}")
    return account


@pytest.fixture()
def make_account():
    """Build an account with locales and a credential pair derived from the username."""
    return _make_account
