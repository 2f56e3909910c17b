"""Pydantic response schemas for the relay's own endpoints.

Upstream payloads are passed through as opaque JSON and have no schema
here; only the health endpoint and error bodies are modelled.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class SourceHealth(BaseModel):
    """Health flag and activity of one upstream source."""

    position: int = Field(ge=0)
    base_url: str
    healthy: bool
    active: bool


class HealthResponse(BaseModel):
    """Relay health check response.

    ``status`` is ``healthy`` when the active source is flagged healthy,
    ``degraded`` when only some other source is, ``unhealthy`` otherwise.
    """

    status: str
    version: str
    cache_entries: int = 0
    sources: list[SourceHealth]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
