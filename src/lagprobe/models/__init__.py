# Copyright (c) Syntropy Systems
"""Pydantic models for lagprobe."""

from .api import ErrorResponse, HealthResponse
from .base import JSONObject, JSONValue, LagprobeBaseModel
from .record import KindStat, ProbeRecord

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "JSONObject",
    "JSONValue",
    "KindStat",
    "LagprobeBaseModel",
    "ProbeRecord",
]
