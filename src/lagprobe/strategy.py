# Copyright (c) Syntropy Systems
"""Read strategies used to poll for a probe write."""

from enum import Enum


class ReadStrategy(str, Enum):
    """How a probe trial reads back the entity it just wrote."""

    LOOKUP_BY_KEY = "lookup-by-key"
    INDEXED_QUERY = "indexed-query"
    PROJECTION_QUERY = "projection-query"
    ANCESTOR_QUERY = "ancestor-query"

    @property
    def needs_ancestor(self) -> bool:
        """Whether trial entities are written under a shared ancestor."""
        return self is ReadStrategy.ANCESTOR_QUERY


# Properties returned by projection queries
PROJECTED_PROPERTIES = ("value", "updated_at")
