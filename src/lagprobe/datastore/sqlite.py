"""SQLite-backed datastore with WAL mode and emulated replication lag."""
from __future__ import annotations

import json
import sqlite3
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from lagprobe.models.record import KindStat

from .base import (
    Datastore,
    Entity,
    EntityNotFoundError,
    Key,
    StorageError,
    entity_size,
    property_size,
    resolve_put_key,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from lagprobe.models.base import JSONObject, JSONValue

    from .base import Query

# SQL schema for the lagprobe entity store
SCHEMA = """
-- Entities keyed by their encoded key path
CREATE TABLE IF NOT EXISTS entities (
    path TEXT PRIMARY KEY,       -- JSON array of [kind, name, id] elements
    kind TEXT NOT NULL,
    properties TEXT NOT NULL,    -- JSON object, latest write
    previous TEXT,               -- JSON object visible until the latest write replicates
    written_at REAL NOT NULL     -- Unix time of the latest write
);

-- Numeric id allocation for puts without a key
CREATE TABLE IF NOT EXISTS id_allocations (
    id INTEGER PRIMARY KEY AUTOINCREMENT
);

CREATE INDEX IF NOT EXISTS idx_entities_kind ON entities(kind);
"""


def get_connection(db_path: Path) -> sqlite3.Connection:
    """
    Get a database connection with proper settings for concurrent access.

    - isolation_level=None for explicit transaction control
    - WAL mode for concurrent readers/writers
    - busy_timeout to wait for locks instead of failing immediately
    - Row factory for dict-like access
    """
    conn = sqlite3.connect(
        str(db_path), timeout=5.0, isolation_level=None, check_same_thread=False
    )
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
    except sqlite3.Error:
        conn.close()
        raise
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    """Initialize the database with the schema."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA)
    finally:
        conn.close()


def encode_key(key: Key) -> str:
    """Encode a complete key as a JSON path string."""
    elements = []
    current: Optional[Key] = key
    while current is not None:
        elements.append([current.kind, current.name, current.id])
        current = current.parent
    return json.dumps(list(reversed(elements)))


def decode_key(path: str) -> Key:
    """Decode a key path produced by encode_key."""
    key: Optional[Key] = None
    for kind, name, ident in json.loads(path):
        key = Key(kind=kind, name=name, id=ident, parent=key)
    if key is None:
        raise StorageError(f"Empty key path: {path!r}")
    return key


class SQLiteDatastore(Datastore):
    """Datastore persisted in a single SQLite file.

    SQLite itself is strongly consistent; ``lookup_lag`` and ``query_lag``
    emulate replication delay against each row's ``written_at`` timestamp,
    the same way MemoryDatastore does. With both lags at zero this backend
    is a strongly consistent control for probe runs.
    """

    name = "sqlite"

    def __init__(
        self,
        db_path: Path,
        lookup_lag: float = 0.0,
        query_lag: float = 0.0,
        *,
        strong_ancestor_queries: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = Path(db_path)
        self.lookup_lag = lookup_lag
        self.query_lag = query_lag
        self.strong_ancestor_queries = strong_ancestor_queries
        self._clock = clock
        self._lock = threading.Lock()
        try:
            self.conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        try:
            self.conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            self.conn.close()
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def _allocate_id(self) -> int:
        cursor = self.conn.execute("INSERT INTO id_allocations DEFAULT VALUES")
        return cursor.lastrowid

    @staticmethod
    def _visible(row: sqlite3.Row, now: float, lag: float) -> Optional[JSONObject]:
        if now - row["written_at"] >= lag:
            return json.loads(row["properties"])
        if row["previous"] is None:
            return None
        return json.loads(row["previous"])

    def put(
        self,
        key: Key | None,
        properties: Mapping[str, JSONValue],
        *,
        kind: str | None = None,
    ) -> Key:
        with self._lock:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
                stored_key = resolve_put_key(key, kind, self._allocate_id)
                path = encode_key(stored_key)
                now = self._clock()

                row = self.conn.execute(
                    "SELECT properties, previous, written_at FROM entities WHERE path = ?",
                    (path,),
                ).fetchone()
                previous = None
                if row is not None:
                    previous = self._visible(row, now, max(self.lookup_lag, self.query_lag))

                self.conn.execute(
                    """
                    INSERT INTO entities (path, kind, properties, previous, written_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(path) DO UPDATE SET
                        properties = excluded.properties,
                        previous = excluded.previous,
                        written_at = excluded.written_at
                    """,
                    (
                        path,
                        stored_key.kind,
                        json.dumps(dict(properties)),
                        json.dumps(previous) if previous is not None else None,
                        now,
                    ),
                )
                self.conn.execute("COMMIT")
            except sqlite3.Error as e:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise StorageError(f"put failed: {e}") from e
            except StorageError:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise
        return stored_key

    def get(self, key: Key) -> Entity:
        try:
            with self._lock:
                row = self.conn.execute(
                    "SELECT properties, previous, written_at FROM entities WHERE path = ?",
                    (encode_key(key),),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"get failed: {e}") from e

        properties = None
        if row is not None:
            properties = self._visible(row, self._clock(), self.lookup_lag)
        if properties is None:
            raise EntityNotFoundError(f"No such entity: {key}")
        return Entity(key=key, properties=properties)

    def _rows(self, kind: str) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self.conn.execute(
                    "SELECT path, properties, previous, written_at FROM entities WHERE kind = ?",
                    (kind,),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"query failed: {e}") from e

    def run_query(self, query: Query) -> list[Entity]:
        lag = self.query_lag
        if query.ancestor is not None and self.strong_ancestor_queries:
            lag = 0.0
        now = self._clock()
        snapshot = []
        for row in self._rows(query.kind):
            properties = self._visible(row, now, lag)
            if properties is not None:
                snapshot.append(Entity(key=decode_key(row["path"]), properties=properties))
        return query.apply(snapshot)

    def kind_stats(self, kind: str) -> KindStat | None:
        rows = self._rows(kind)
        if not rows:
            return None
        total = 0
        properties_total = 0
        for row in rows:
            properties = json.loads(row["properties"])
            total += entity_size(decode_key(row["path"]), properties)
            properties_total += property_size(properties)
        return KindStat(
            kind_name=kind,
            count=len(rows),
            bytes=total,
            entity_bytes=properties_total,
            timestamp=datetime.now(timezone.utc),
        )
