"""In-memory query engine."""

from __future__ import annotations

from itertools import count
from threading import Lock
from typing import Any, Iterable, Mapping

from .base import UNIQUE_FIELDS, IndexLookup, QueryEngine, UniqueConstraintViolation, check_field_name


class InMemoryQueryEngine(QueryEngine):
    """Thread-safe node store keeping every node in a process-local dict."""

    def __init__(self) -> None:
        """Initialise node storage and the id sequence."""
        self._nodes: dict[int, dict[str, Any]] = {}
        self._ids = count(1)
        self._lock = Lock()

    def fetch(self, lookup: IndexLookup, fields: Iterable[str]) -> list[dict[str, Any]]:
        names = [check_field_name(name) for name in fields]
        with self._lock:
            return [
                {name: properties.get(name) for name in names}
                for properties in self._matching(lookup)
            ]

    def exists(self, lookup: IndexLookup) -> bool:
        with self._lock:
            return any(True for _ in self._matching(lookup))

    def count(self, lookup: IndexLookup) -> int:
        with self._lock:
            return sum(1 for _ in self._matching(lookup))

    def create_node(self, properties: Mapping[str, Any]) -> None:
        values = {check_field_name(name): value for name, value in properties.items()}
        with self._lock:
            self._check_unique(values, skip=None)
            self._nodes[next(self._ids)] = values

    def set_properties(self, lookup: IndexLookup, properties: Mapping[str, Any]) -> int:
        values = {check_field_name(name): value for name, value in properties.items()}
        with self._lock:
            matched = [node_id for node_id, node in self._nodes.items() if lookup.matches(node)]
            for node_id in matched:
                self._check_unique(values, skip=node_id)
            for node_id in matched:
                self._nodes[node_id].update(values)
            return len(matched)

    def _matching(self, lookup: IndexLookup):
        # sorted by key, the order an index scan yields
        hits = [node for node in self._nodes.values() if lookup.matches(node)]
        return sorted(hits, key=lambda node: str(node.get(lookup.index)))

    def _check_unique(self, values: Mapping[str, Any], skip: int | None) -> None:
        for field_name in UNIQUE_FIELDS:
            key = values.get(field_name)
            if not key:
                continue
            for node_id, node in self._nodes.items():
                if node_id != skip and node.get(field_name) == key:
                    raise UniqueConstraintViolation(field_name, str(key))
