# Copyright (c) Syntropy Systems
"""Datastore backends probed by lagprobe."""
from __future__ import annotations

from typing import TYPE_CHECKING

from lagprobe.config import get_db_path

from .base import (
    Datastore,
    Entity,
    EntityNotFoundError,
    Filter,
    Key,
    Query,
    QueryError,
    StorageError,
)
from .memory import MemoryDatastore
from .sqlite import SQLiteDatastore

if TYPE_CHECKING:
    from pathlib import Path

    from lagprobe.config import ProbeConfig

__all__ = [
    "Datastore",
    "Entity",
    "EntityNotFoundError",
    "Filter",
    "Key",
    "MemoryDatastore",
    "Query",
    "QueryError",
    "SQLiteDatastore",
    "StorageError",
    "get_datastore",
]

BACKENDS = ("memory", "sqlite")


def get_datastore(config: ProbeConfig, config_dir: Path | None = None) -> Datastore:
    """Factory function to get a datastore backend from configuration."""
    backend = config.backend.lower()
    lookup_lag = config.lookup_lag_ms / 1000.0
    query_lag = config.query_lag_ms / 1000.0

    if backend == "memory":
        return MemoryDatastore(
            lookup_lag=lookup_lag,
            query_lag=query_lag,
            strong_ancestor_queries=config.strong_ancestor_queries,
        )
    if backend == "sqlite":
        return SQLiteDatastore(
            get_db_path(config, config_dir),
            lookup_lag=lookup_lag,
            query_lag=query_lag,
            strong_ancestor_queries=config.strong_ancestor_queries,
        )

    msg = f"Unknown backend: {config.backend}. Available: {list(BACKENDS)}"
    raise ValueError(msg)
