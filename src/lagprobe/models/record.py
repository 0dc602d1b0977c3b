# Copyright (c) Syntropy Systems
"""Pydantic models for probe entities and datastore statistics."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import Field

from .base import JSONObject, LagprobeBaseModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProbeRecord(LagprobeBaseModel):
    """Entity written by each probe trial."""

    name: str = ""
    value: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_properties(self) -> JSONObject:
        """Return the record as datastore properties."""
        return self.model_dump(mode="json")


class KindStat(LagprobeBaseModel):
    """Per-kind storage statistics."""

    kind_name: str
    count: int
    bytes: int
    entity_bytes: int
    timestamp: datetime
