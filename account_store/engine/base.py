"""Abstract interface of the indexed query engine backing the account store."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

INDEXED_FIELDS: tuple[str, ...] = ("uri", "email")
UNIQUE_FIELDS: tuple[str, ...] = ("uri", "email")
TYPE_FIELD = "type"

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_field_name(name: str) -> str:
    """Validate a property name before it is placed in a query skeleton."""
    if not _FIELD_NAME.match(name):
        raise ValueError(f"invalid property name: {name!r}")
    return name


@dataclass(frozen=True, slots=True)
class IndexLookup:
    """Lookup of nodes through an auto-maintained index.

    ``key`` is matched exactly, or as a prefix when ``prefix`` is set.
    ``node_type`` optionally restricts matches to nodes with that type marker.
    """

    index: str
    key: str
    prefix: bool = False
    node_type: str | None = None

    def __post_init__(self) -> None:
        if self.index not in INDEXED_FIELDS:
            raise ValueError(f"no index on field {self.index!r}")

    def matches(self, properties: Mapping[str, Any]) -> bool:
        value = properties.get(self.index)
        if value is None:
            return False
        value = str(value)
        hit = value.startswith(self.key) if self.prefix else value == self.key
        if not hit:
            return False
        return self.node_type is None or properties.get(TYPE_FIELD) == self.node_type


class UniqueConstraintViolation(Exception):
    """A write would give a unique index two nodes with the same key."""

    def __init__(self, index: str, key: str) -> None:
        super().__init__(f"unique index {index!r} already holds {key!r}")
        self.index = index
        self.key = key


class QueryEngine(ABC):
    """Executes index lookups and property writes against a node store.

    Values always travel as bound parameters; only validated field names are
    ever interpolated into query text.
    """

    @abstractmethod
    def fetch(self, lookup: IndexLookup, fields: Iterable[str]) -> list[dict[str, Any]]:
        """Return matching nodes projected onto ``fields``."""

    @abstractmethod
    def exists(self, lookup: IndexLookup) -> bool:
        """Return whether at least one node matches."""

    @abstractmethod
    def count(self, lookup: IndexLookup) -> int:
        """Return the number of matching nodes."""

    @abstractmethod
    def create_node(self, properties: Mapping[str, Any]) -> None:
        """Write a new node with all ``properties`` in one atomic operation."""

    @abstractmethod
    def set_properties(self, lookup: IndexLookup, properties: Mapping[str, Any]) -> int:
        """Atomically write ``properties`` on the matched nodes and return how many."""

    def close(self) -> None:
        """Release backend resources; engines without any keep the default."""
