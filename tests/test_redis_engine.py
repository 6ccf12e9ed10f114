"""Tests for the Redis-backed query engine."""

from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from account_store.domain.errors import EngineFailure
from account_store.engine.base import IndexLookup, UniqueConstraintViolation
from account_store.engine.redis_engine import RedisQueryEngine


@pytest.fixture()
def engine(redis_client) -> RedisQueryEngine:
    return RedisQueryEngine(redis_client, key_prefix="test")


def test_create_and_fetch_projects_fields(engine):
    engine.create_node({"type": "user", "uri": "/u/alice", "email": "a@x.com", "creationDate": 42})
    rows = engine.fetch(IndexLookup("email", "a@x.com"), ("uri", "creationDate", "missing"))
    assert rows == [{"uri": "/u/alice", "creationDate": "42", "missing": None}]


def test_unique_indexes_reject_duplicates(engine):
    engine.create_node({"uri": "/u/alice", "email": "a@x.com"})
    with pytest.raises(UniqueConstraintViolation) as excinfo:
        engine.create_node({"uri": "/u/other", "email": "a@x.com"})
    assert excinfo.value.index == "email"
    with pytest.raises(UniqueConstraintViolation) as excinfo:
        engine.create_node({"uri": "/u/alice", "email": "b@x.com"})
    assert excinfo.value.index == "uri"
    assert engine.count(IndexLookup("email", "b@x.com")) == 0


def test_empty_email_is_not_unique(engine):
    engine.create_node({"uri": "/u/a", "email": ""})
    engine.create_node({"uri": "/u/b", "email": ""})
    assert engine.exists(IndexLookup("uri", "/u/b"))


def test_prefix_lookup_filters_type(engine):
    engine.create_node({"type": "user", "uri": "/u/alice"})
    engine.create_node({"type": "user", "uri": "/u/alicia"})
    engine.create_node({"type": "vertex", "uri": "/u/alice/vertex"})
    engine.create_node({"type": "user", "uri": "/u/bob"})

    rows = engine.fetch(IndexLookup("uri", "/u/ali", prefix=True, node_type="user"), ("uri",))

    assert [row["uri"] for row in rows] == ["/u/alice", "/u/alicia"]
    assert engine.count(IndexLookup("uri", "/u/ali", prefix=True)) == 3


def test_set_properties_moves_index_entries(engine):
    engine.create_node({"uri": "/u/alice", "email": "a@x.com"})
    updated = engine.set_properties(IndexLookup("uri", "/u/alice"), {"email": "new@x.com", "salt": "s"})
    assert updated == 1
    assert not engine.exists(IndexLookup("email", "a@x.com"))
    assert engine.fetch(IndexLookup("email", "new@x.com"), ("salt",)) == [{"salt": "s"}]


def test_set_properties_respects_unique_index(engine):
    engine.create_node({"uri": "/u/alice", "email": "a@x.com"})
    engine.create_node({"uri": "/u/bob", "email": "b@x.com"})
    with pytest.raises(UniqueConstraintViolation):
        engine.set_properties(IndexLookup("uri", "/u/bob"), {"email": "a@x.com"})


def test_set_properties_without_match(engine):
    assert engine.set_properties(IndexLookup("uri", "/u/ghost"), {"salt": "s"}) == 0


def test_rejects_unsafe_field_names(engine):
    with pytest.raises(ValueError):
        engine.create_node({"uri": "/u/x", "bad name": "v"})


def test_backend_errors_become_engine_failures(engine, monkeypatch):
    def broken(*args, **kwargs):
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(engine._client, "smembers", broken)
    with pytest.raises(EngineFailure):
        engine.count(IndexLookup("email", "a@x.com"))
