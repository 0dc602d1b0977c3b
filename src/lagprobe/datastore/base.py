# Copyright (c) Syntropy Systems
"""Storage collaborator interface: keys, entities, queries and errors."""
from __future__ import annotations

import functools
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from typing_extensions import Self

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from types import TracebackType

    from lagprobe.models.base import JSONObject, JSONValue
    from lagprobe.models.record import KindStat

KEY_PROPERTY = "__key__"
FILTER_OPERATORS = ("=", ">")


class StorageError(Exception):
    """Error raised by a datastore backend."""


class EntityNotFoundError(StorageError):
    """No entity is visible under the requested key."""


class QueryError(StorageError):
    """The query is malformed or unsupported."""


PathElement = tuple[str, int, int, str]


@functools.total_ordering
@dataclass(frozen=True)
class Key:
    """Datastore key: a kind plus a name or numeric id, optionally parented.

    Keys order by their full ancestor path. Within one kind, numeric ids sort
    before names.
    """

    kind: str
    name: str | None = None
    id: int | None = None
    parent: Key | None = None

    @property
    def is_complete(self) -> bool:
        """Whether the key identifies a single entity."""
        return self.name is not None or self.id is not None

    def _element(self) -> PathElement:
        if self.name is not None:
            return (self.kind, 1, 0, self.name)
        return (self.kind, 0, self.id or 0, "")

    def path(self) -> tuple[PathElement, ...]:
        """Return the key path from the root ancestor down to this key."""
        parent_path = self.parent.path() if self.parent is not None else ()
        return (*parent_path, self._element())

    def has_ancestor(self, ancestor: Key) -> bool:
        """Whether ``ancestor`` is this key or one of its ancestors."""
        own = self.path()
        other = ancestor.path()
        return own[: len(other)] == other

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return self.path() < other.path()

    def __str__(self) -> str:
        parts = [f"{kind}:{name if flag else ident}" for kind, flag, ident, name in self.path()]
        return "/".join(parts)


@dataclass
class Entity:
    """An entity as returned by a read: its key and (possibly projected) properties."""

    key: Key
    properties: dict[str, JSONValue] = field(default_factory=dict)

    def get(self, name: str, default: JSONValue | None = None) -> JSONValue | None:
        """Return a property value by name."""
        return self.properties.get(name, default)


@dataclass(frozen=True)
class Filter:
    """A single property filter."""

    property: str
    op: str
    value: object

    def matches(self, entity: Entity) -> bool:
        """Evaluate the filter against an entity."""
        if self.property == KEY_PROPERTY:
            actual: object = entity.key
        elif self.property in entity.properties:
            actual = entity.properties[self.property]
        else:
            return False
        if self.op == "=":
            return actual == self.value
        try:
            return actual > self.value  # type: ignore[operator]
        except TypeError:
            return False


@dataclass(frozen=True)
class Query:
    """Immutable query description.

    Builder methods validate their input and return a new query; invalid
    combinations raise ``QueryError``.
    """

    kind: str
    filters: tuple[Filter, ...] = ()
    projection: tuple[str, ...] = ()
    ancestor: Key | None = None
    order: tuple[str, ...] = ()
    limit: int | None = None
    keys_only: bool = False

    def filter(self, prop: str, value: object, op: str = "=") -> Self:
        """Add a filter. Only equality, and ``>`` on ``__key__``, are supported."""
        if op not in FILTER_OPERATORS:
            msg = f"Unsupported filter operator {op!r}"
            raise QueryError(msg)
        if prop == KEY_PROPERTY:
            if not isinstance(value, Key) or not value.is_complete:
                msg = "__key__ filters require a complete key"
                raise QueryError(msg)
        elif op != "=":
            msg = f"Inequality filters are only supported on {KEY_PROPERTY}"
            raise QueryError(msg)
        if op == "=" and prop in self.projection:
            msg = f"Cannot project property {prop!r} used in an equality filter"
            raise QueryError(msg)
        return replace(self, filters=(*self.filters, Filter(prop, op, value)))

    def project(self, *props: str) -> Self:
        """Return only the named properties."""
        if self.keys_only:
            msg = "Projection and keys-only are mutually exclusive"
            raise QueryError(msg)
        if not props:
            msg = "Projection requires at least one property"
            raise QueryError(msg)
        for f in self.filters:
            if f.op == "=" and f.property in props:
                msg = f"Cannot project property {f.property!r} used in an equality filter"
                raise QueryError(msg)
        return replace(self, projection=tuple(props))

    def with_ancestor(self, ancestor: Key) -> Self:
        """Scope the query to descendants of ``ancestor``."""
        if not ancestor.is_complete:
            msg = "Ancestor key must be complete"
            raise QueryError(msg)
        return replace(self, ancestor=ancestor)

    def order_by(self, prop: str) -> Self:
        """Order results. Only ``__key__`` ordering is supported."""
        if prop != KEY_PROPERTY:
            msg = f"Only {KEY_PROPERTY} ordering is supported"
            raise QueryError(msg)
        return replace(self, order=(*self.order, prop))

    def with_limit(self, limit: int) -> Self:
        """Return at most ``limit`` results."""
        if limit <= 0:
            msg = f"Limit must be positive, got {limit}"
            raise QueryError(msg)
        return replace(self, limit=limit)

    def only_keys(self) -> Self:
        """Return keys with no properties."""
        if self.projection:
            msg = "Projection and keys-only are mutually exclusive"
            raise QueryError(msg)
        return replace(self, keys_only=True)

    def matches(self, entity: Entity) -> bool:
        """Whether an entity satisfies kind, ancestor and filters."""
        if entity.key.kind != self.kind:
            return False
        if self.ancestor is not None and not entity.key.has_ancestor(self.ancestor):
            return False
        return all(f.matches(entity) for f in self.filters)

    def apply(self, entities: Iterable[Entity]) -> list[Entity]:
        """Evaluate the query over a snapshot of visible entities."""
        results = [e for e in entities if self.matches(e)]
        if self.order:
            results.sort(key=lambda e: e.key)
        if self.limit is not None:
            results = results[: self.limit]
        if self.keys_only:
            return [Entity(key=e.key) for e in results]
        if self.projection:
            projected = []
            for e in results:
                if all(p in e.properties for p in self.projection):
                    projected.append(
                        Entity(key=e.key, properties={p: e.properties[p] for p in self.projection})
                    )
            return projected
        return [Entity(key=e.key, properties=dict(e.properties)) for e in results]


class Datastore(ABC):
    """Abstract key-value store with eventually consistent reads."""

    name: str

    def key_of(self, kind: str, name: str, parent: Key | None = None) -> Key:
        """Build a named key without a storage round trip."""
        return Key(kind=kind, name=name, parent=parent)

    @abstractmethod
    def put(
        self,
        key: Key | None,
        properties: Mapping[str, JSONValue],
        *,
        kind: str | None = None,
    ) -> Key:
        """Upsert an entity and return its key.

        When ``key`` is None a numeric id is allocated under ``kind``.
        """

    @abstractmethod
    def get(self, key: Key) -> Entity:
        """Look up an entity by key. Raises EntityNotFoundError."""

    @abstractmethod
    def run_query(self, query: Query) -> list[Entity]:
        """Run a query and return matching entities."""

    def count(self, kind: str) -> int:
        """Count visible entities of a kind."""
        return len(self.run_query(Query(kind).only_keys()))

    @abstractmethod
    def kind_stats(self, kind: str) -> KindStat | None:
        """Return storage statistics for a kind, or None if it has none."""

    def close(self) -> None:
        """Release backend resources."""
        return

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


def resolve_put_key(key: Key | None, kind: str | None, allocate: Callable[[], int]) -> Key:
    """Return the key to store under, allocating an id for a missing key."""
    if key is not None and key.is_complete:
        return key
    if key is not None:
        return replace(key, id=allocate())
    if kind is None:
        msg = "put() without a key requires a kind"
        raise StorageError(msg)
    return Key(kind=kind, id=allocate())


def property_size(properties: JSONObject) -> int:
    """Approximate encoded size of an entity's properties in bytes."""
    return len(json.dumps(properties, sort_keys=True).encode())


def entity_size(key: Key, properties: JSONObject) -> int:
    """Approximate stored size of an entity, key included, in bytes."""
    return len(str(key).encode()) + property_size(properties)
