# Copyright (c) Syntropy Systems
"""Pydantic models for lagprobe API responses."""

from __future__ import annotations

from .base import LagprobeBaseModel


class ErrorResponse(LagprobeBaseModel):
    """Error payload returned by the server."""

    detail: str


class HealthResponse(LagprobeBaseModel):
    """Health check response."""

    status: str
