"""Postgres-backed query engine storing nodes as JSONB property maps."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Mapping

import psycopg
from psycopg import errors
from psycopg.rows import tuple_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from ..domain.errors import EngineFailure
from .base import TYPE_FIELD, IndexLookup, QueryEngine, UniqueConstraintViolation, check_field_name

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS graph_nodes (
        node_id BIGSERIAL PRIMARY KEY,
        properties JSONB NOT NULL DEFAULT '{}'::jsonb
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS graph_nodes_uri_key
    ON graph_nodes ((properties->>'uri'))
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS graph_nodes_email_key
    ON graph_nodes ((properties->>'email'))
    WHERE properties->>'email' <> ''
    """,
    """
    CREATE INDEX IF NOT EXISTS graph_nodes_uri_prefix
    ON graph_nodes ((properties->>'uri') text_pattern_ops)
    """,
)

_CONSTRAINT_INDEXES = {
    "graph_nodes_uri_key": "uri",
    "graph_nodes_email_key": "email",
}


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so ``term`` only ever matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgresQueryEngine(QueryEngine):
    """Node store on a single ``graph_nodes`` table with expression indexes per indexed field."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def ensure_schema(self) -> None:
        """Create the node table and its indexes when they are missing."""
        with self._cursor() as (conn, cur):
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
            conn.commit()

    def fetch(self, lookup: IndexLookup, fields: Iterable[str]) -> list[dict[str, Any]]:
        names = [check_field_name(name) for name in fields]
        where_sql, params = self._where(lookup)
        query = f"""
            SELECT properties
            FROM graph_nodes
            WHERE {where_sql}
            ORDER BY properties->>'{lookup.index}'
        """
        with self._cursor() as (_, cur):
            cur.execute(query, params)
            rows = cur.fetchall()
        return [{name: (row[0] or {}).get(name) for name in names} for row in rows]

    def exists(self, lookup: IndexLookup) -> bool:
        where_sql, params = self._where(lookup)
        query = f"SELECT EXISTS (SELECT 1 FROM graph_nodes WHERE {where_sql})"
        with self._cursor() as (_, cur):
            cur.execute(query, params)
            row = cur.fetchone()
        return bool(row and row[0])

    def count(self, lookup: IndexLookup) -> int:
        where_sql, params = self._where(lookup)
        query = f"SELECT count(*) FROM graph_nodes WHERE {where_sql}"
        with self._cursor() as (_, cur):
            cur.execute(query, params)
            row = cur.fetchone()
        return int(row[0]) if row else 0

    def create_node(self, properties: Mapping[str, Any]) -> None:
        values = {check_field_name(name): value for name, value in properties.items()}
        with self._cursor(values) as (conn, cur):
            cur.execute(
                "INSERT INTO graph_nodes (properties) VALUES (%s)",
                (Jsonb(values),),
            )
            conn.commit()

    def set_properties(self, lookup: IndexLookup, properties: Mapping[str, Any]) -> int:
        values = {check_field_name(name): value for name, value in properties.items()}
        where_sql, params = self._where(lookup)
        query = f"""
            UPDATE graph_nodes
            SET properties = properties || %s
            WHERE {where_sql}
        """
        with self._cursor(values) as (conn, cur):
            cur.execute(query, [Jsonb(values), *params])
            updated = cur.rowcount
            conn.commit()
        return updated

    def close(self) -> None:
        self._pool.close()

    def _where(self, lookup: IndexLookup) -> tuple[str, list[Any]]:
        index = check_field_name(lookup.index)
        if lookup.prefix:
            clauses = [f"properties->>'{index}' LIKE %s ESCAPE '\\'"]
            params: list[Any] = [escape_like(lookup.key) + "%"]
        else:
            clauses = [f"properties->>'{index}' = %s"]
            params = [lookup.key]
        if lookup.node_type is not None:
            clauses.append(f"properties->>'{TYPE_FIELD}' = %s")
            params.append(lookup.node_type)
        return " AND ".join(clauses), params

    @contextmanager
    def _cursor(
        self, written: Mapping[str, Any] | None = None
    ) -> Iterator[tuple[psycopg.Connection, psycopg.Cursor]]:
        """Yield a pooled connection and cursor, translating driver errors."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    yield conn, cur
        except errors.UniqueViolation as exc:
            index = _CONSTRAINT_INDEXES.get(exc.diag.constraint_name or "", "uri")
            key = str((written or {}).get(index, ""))
            raise UniqueConstraintViolation(index, key) from exc
        except psycopg.Error as exc:
            logger.exception("postgres query engine failure")
            raise EngineFailure(str(exc)) from exc
