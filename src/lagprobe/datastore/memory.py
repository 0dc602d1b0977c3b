# Copyright (c) Syntropy Systems
"""In-process datastore with simulated replication lag."""
from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from lagprobe.models.record import KindStat

from .base import (
    Datastore,
    Entity,
    EntityNotFoundError,
    Key,
    entity_size,
    property_size,
    resolve_put_key,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from lagprobe.models.base import JSONObject, JSONValue

    from .base import Query


@dataclass
class _StoredEntity:
    """Latest write plus the version readers see until it replicates."""

    properties: JSONObject
    written_at: float
    previous: JSONObject | None = None

    def visible(self, now: float, lag: float) -> JSONObject | None:
        if now - self.written_at >= lag:
            return self.properties
        return self.previous


class MemoryDatastore(Datastore):
    """Datastore kept in a dict, with configurable visibility lag.

    A write becomes visible to key lookups ``lookup_lag`` seconds after it
    is applied, and to queries after ``query_lag`` seconds. Until then
    readers see the previous version of the entity, or nothing if it is new.
    With ``strong_ancestor_queries`` set, ancestor-scoped queries always see
    the latest writes.
    """

    name = "memory"

    lookup_lag: float
    query_lag: float
    strong_ancestor_queries: bool
    _clock: Callable[[], float]
    _entities: dict[Key, _StoredEntity]
    _ids: itertools.count[int]
    _lock: threading.Lock

    def __init__(
        self,
        lookup_lag: float = 0.0,
        query_lag: float = 0.0,
        *,
        strong_ancestor_queries: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.lookup_lag = lookup_lag
        self.query_lag = query_lag
        self.strong_ancestor_queries = strong_ancestor_queries
        self._clock = clock
        self._entities = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def put(
        self,
        key: Key | None,
        properties: Mapping[str, JSONValue],
        *,
        kind: str | None = None,
    ) -> Key:
        with self._lock:
            stored_key = resolve_put_key(key, kind, lambda: next(self._ids))
            now = self._clock()
            existing = self._entities.get(stored_key)
            previous = None
            if existing is not None:
                previous = existing.visible(now, max(self.lookup_lag, self.query_lag))
            self._entities[stored_key] = _StoredEntity(
                properties=dict(properties),
                written_at=now,
                previous=previous,
            )
        return stored_key

    def get(self, key: Key) -> Entity:
        with self._lock:
            stored = self._entities.get(key)
            properties = None
            if stored is not None:
                properties = stored.visible(self._clock(), self.lookup_lag)
        if properties is None:
            msg = f"No such entity: {key}"
            raise EntityNotFoundError(msg)
        return Entity(key=key, properties=dict(properties))

    def run_query(self, query: Query) -> list[Entity]:
        lag = self.query_lag
        if query.ancestor is not None and self.strong_ancestor_queries:
            lag = 0.0
        with self._lock:
            now = self._clock()
            snapshot = []
            for key, stored in self._entities.items():
                properties = stored.visible(now, lag)
                if properties is not None:
                    snapshot.append(Entity(key=key, properties=properties))
        return query.apply(snapshot)

    def kind_stats(self, kind: str) -> KindStat | None:
        with self._lock:
            entities = [(k, s.properties) for k, s in self._entities.items() if k.kind == kind]
        if not entities:
            return None
        sizes = [entity_size(k, p) for k, p in entities]
        property_sizes = [property_size(p) for _, p in entities]
        return KindStat(
            kind_name=kind,
            count=len(entities),
            bytes=sum(sizes),
            entity_bytes=sum(property_sizes),
            timestamp=datetime.now(timezone.utc),
        )
