"""Query engine backends and the factory selecting one from settings."""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..domain.errors import EngineFailure
from .base import IndexLookup, QueryEngine, UniqueConstraintViolation
from .memory_engine import InMemoryQueryEngine

logger = logging.getLogger(__name__)

__all__ = [
    "IndexLookup",
    "InMemoryQueryEngine",
    "QueryEngine",
    "UniqueConstraintViolation",
    "build_query_engine",
]


def build_query_engine(settings: Settings | None = None) -> QueryEngine:
    """Instantiate the configured query engine backend."""
    settings = settings or get_settings()
    backend = settings.query_engine_backend

    if backend == "redis":
        if not settings.redis_url:
            raise EngineFailure("QUERY_ENGINE_BACKEND=redis requires REDIS_URL")
        import redis

        from .redis_engine import RedisQueryEngine

        client = redis.from_url(settings.redis_url)
        try:
            # ensure connectivity early to fail fast
            client.ping()
        except redis.RedisError as exc:
            client.close()
            raise EngineFailure(f"redis unavailable at {settings.redis_url}: {exc}") from exc
        logger.info("query engine configured for redis backend at %s", settings.redis_url)
        return RedisQueryEngine(client, key_prefix=settings.graph_key_prefix)

    if backend == "postgres":
        from psycopg_pool import ConnectionPool

        from .postgres_engine import PostgresQueryEngine

        pool = ConnectionPool(settings.database_url, open=False)
        try:
            pool.open()
            engine = PostgresQueryEngine(pool)
            engine.ensure_schema()
        except Exception:
            pool.close()
            raise
        logger.info("query engine configured for postgres backend")
        return engine

    if backend != "memory":
        raise ValueError(f"unknown query engine backend: {backend!r}")
    logger.info("query engine using in-memory backend")
    return InMemoryQueryEngine()
