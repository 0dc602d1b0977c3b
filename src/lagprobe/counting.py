# Copyright (c) Syntropy Systems
"""Entity counting: direct count, key-paged count and kind statistics."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lagprobe.datastore.base import KEY_PROPERTY, Query

if TYPE_CHECKING:
    from lagprobe.datastore.base import Datastore

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000


class NoStatsError(LookupError):
    """The datastore has no statistics for a kind."""


def count_entities(datastore: Datastore, kind: str) -> int:
    """Count entities of a kind with the backend's count operation."""
    return datastore.count(kind)


def count_by_pages(datastore: Datastore, kind: str, page_size: int = PAGE_SIZE) -> int:
    """Count entities by walking keys-only pages ordered by key.

    Each page after the first starts strictly after the last key seen.
    """
    page_query = Query(kind).only_keys().order_by(KEY_PROPERTY).with_limit(page_size)
    query = page_query
    total = 0
    while True:
        page = datastore.run_query(query)
        if not page:
            break
        logger.info("Counted page of %d keys", len(page))
        total += len(page)
        query = page_query.filter(KEY_PROPERTY, page[-1].key, op=">")
    return total


def stat_count(datastore: Datastore, kind: str) -> int:
    """Return the entity count recorded in the kind's statistics."""
    stats = datastore.kind_stats(kind)
    if stats is None:
        msg = f"No statistics for kind {kind!r}"
        raise NoStatsError(msg)
    return stats.count
