"""Redis-backed query engine using hashes for nodes and sets for indexes."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from redis import Redis
from redis.exceptions import RedisError, WatchError

from ..domain.errors import EngineFailure
from .base import (
    INDEXED_FIELDS,
    TYPE_FIELD,
    UNIQUE_FIELDS,
    IndexLookup,
    QueryEngine,
    UniqueConstraintViolation,
    check_field_name,
)

logger = logging.getLogger(__name__)

_LEX_SEPARATOR = b"\x00"


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _encode(value: Any) -> str:
    return "" if value is None else str(value)


class RedisQueryEngine(QueryEngine):
    """Node store on Redis.

    Layout under ``key_prefix``:

    * ``<prefix>:node:<id>`` hash holding the node properties
    * ``<prefix>:idx:<field>:<value>`` set of node ids with that exact value
    * ``<prefix>:lex:<field>`` sorted set of ``value\\0id`` members for prefix scans
    * ``<prefix>:seq`` node id sequence

    Writes run in MULTI/EXEC with WATCH on the unique index keys so the
    uniqueness check and the write happen atomically.
    """

    def __init__(self, client: Redis, *, key_prefix: str = "graph") -> None:
        """Store the Redis client and the key namespace."""
        self._client = client
        self._key_prefix = key_prefix

    def fetch(self, lookup: IndexLookup, fields: Iterable[str]) -> list[dict[str, Any]]:
        names = [check_field_name(name) for name in fields]
        try:
            node_ids = self._matching(lookup)
            if not node_ids or not names:
                return [{} for _ in node_ids]
            with self._client.pipeline(transaction=False) as pipe:
                for node_id in node_ids:
                    pipe.hmget(self._node_key(node_id), names)
                rows = pipe.execute()
        except RedisError as exc:
            logger.exception("redis query engine failure")
            raise EngineFailure(str(exc)) from exc
        return [{name: _text(value) for name, value in zip(names, row)} for row in rows]

    def exists(self, lookup: IndexLookup) -> bool:
        return self.count(lookup) > 0

    def count(self, lookup: IndexLookup) -> int:
        try:
            return len(self._matching(lookup))
        except RedisError as exc:
            logger.exception("redis query engine failure")
            raise EngineFailure(str(exc)) from exc

    def create_node(self, properties: Mapping[str, Any]) -> None:
        values = {check_field_name(name): _encode(value) for name, value in properties.items()}
        unique_keys = {
            field: self._index_key(field, values[field])
            for field in UNIQUE_FIELDS
            if values.get(field)
        }
        try:
            node_id = str(self._client.incr(self._key("seq")))
            with self._client.pipeline() as pipe:
                while True:
                    try:
                        if unique_keys:
                            pipe.watch(*unique_keys.values())
                            for field, key in unique_keys.items():
                                if pipe.scard(key):
                                    raise UniqueConstraintViolation(field, values[field])
                        pipe.multi()
                        self._write(pipe, node_id, values, previous={})
                        pipe.execute()
                        return
                    except WatchError:
                        logger.debug("unique index changed during create, retrying")
        except RedisError as exc:
            logger.exception("redis query engine failure")
            raise EngineFailure(str(exc)) from exc

    def set_properties(self, lookup: IndexLookup, properties: Mapping[str, Any]) -> int:
        values = {check_field_name(name): _encode(value) for name, value in properties.items()}
        indexed = [field for field in INDEXED_FIELDS if field in values]
        try:
            node_ids = self._matching(lookup)
            if not node_ids:
                return 0
            watched = [self._node_key(node_id) for node_id in node_ids]
            watched += [
                self._index_key(field, values[field])
                for field in indexed
                if field in UNIQUE_FIELDS and values[field]
            ]
            with self._client.pipeline() as pipe:
                while True:
                    try:
                        pipe.watch(*watched)
                        previous = {}
                        for node_id in node_ids:
                            old = pipe.hmget(self._node_key(node_id), indexed) if indexed else []
                            previous[node_id] = {
                                field: _text(value) for field, value in zip(indexed, old)
                            }
                        self._check_unique_update(pipe, values, indexed, node_ids)
                        pipe.multi()
                        for node_id in node_ids:
                            self._write(pipe, node_id, values, previous[node_id])
                        pipe.execute()
                        return len(node_ids)
                    except WatchError:
                        logger.debug("node changed during property write, retrying")
        except RedisError as exc:
            logger.exception("redis query engine failure")
            raise EngineFailure(str(exc)) from exc

    def close(self) -> None:
        self._client.close()

    def _check_unique_update(self, pipe, values, indexed, node_ids) -> None:
        for field in indexed:
            if field not in UNIQUE_FIELDS or not values[field]:
                continue
            holders = {_text(member) for member in pipe.smembers(self._index_key(field, values[field]))}
            if holders - set(node_ids) or len(node_ids) > 1:
                raise UniqueConstraintViolation(field, values[field])

    def _write(self, pipe, node_id: str, values: Mapping[str, str], previous: Mapping[str, str | None]) -> None:
        pipe.hset(self._node_key(node_id), mapping=values)
        for field in INDEXED_FIELDS:
            if field not in values:
                continue
            old = previous.get(field)
            if old:
                pipe.srem(self._index_key(field, old), node_id)
                pipe.zrem(self._key("lex", field), self._lex_member(old, node_id))
            if values[field]:
                pipe.sadd(self._index_key(field, values[field]), node_id)
                pipe.zadd(self._key("lex", field), {self._lex_member(values[field], node_id): 0})

    def _matching(self, lookup: IndexLookup) -> list[str]:
        if lookup.prefix:
            start = b"[" + lookup.key.encode("utf-8")
            members = self._client.zrangebylex(self._key("lex", lookup.index), start, start + b"\xff")
            node_ids = [member.rsplit(_LEX_SEPARATOR, 1)[1].decode("utf-8") for member in map(_bytes, members)]
        else:
            members = self._client.smembers(self._index_key(lookup.index, lookup.key))
            node_ids = sorted((_text(member) for member in members), key=int)
        if lookup.node_type is None or not node_ids:
            return node_ids
        with self._client.pipeline(transaction=False) as pipe:
            for node_id in node_ids:
                pipe.hget(self._node_key(node_id), TYPE_FIELD)
            types = pipe.execute()
        return [node_id for node_id, node_type in zip(node_ids, types) if _text(node_type) == lookup.node_type]

    def _lex_member(self, value: str, node_id: str) -> bytes:
        return value.encode("utf-8") + _LEX_SEPARATOR + node_id.encode("utf-8")

    def _index_key(self, field: str, value: str) -> str:
        return self._key("idx", field, value)

    def _node_key(self, node_id: str) -> str:
        return self._key("node", node_id)

    def _key(self, *parts: str) -> str:
        return ":".join((self._key_prefix, *parts))


def _bytes(value: Any) -> bytes:
    return value if isinstance(value, bytes) else str(value).encode("utf-8")
