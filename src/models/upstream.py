"""Upstream source and upstream response models.

``UpstreamSource`` identifies one interchangeable third-party API by its
position in the configured list.  ``UpstreamResponse`` is what the retry
orchestrator hands back to the request coordinator: the raw body exactly as
received plus the decoded JSON payload when the body parsed.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Application-level success code used by every known upstream.
SUCCESS_CODE = 200

FAILURE_PAYLOAD: dict[str, Any] = {
    "code": 500,
    "message": "all sources unavailable",
    "data": [],
}


def looks_successful(payload: Any) -> bool:
    """Return ``True`` when *payload* carries a recognisable success signal.

    A payload counts as successful when it is a JSON object whose ``code``
    equals :data:`SUCCESS_CODE` or which has a ``data`` field at all.
    """
    if not isinstance(payload, dict):
        return False
    return payload.get("code") == SUCCESS_CODE or "data" in payload


class UpstreamSource(BaseModel):
    """One configured upstream API.  Identity is its list position."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    position: int = Field(ge=0)


class UpstreamResponse(BaseModel):
    """Result of one logical upstream request."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)
    # Decoded JSON body; only meaningful when ``decoded`` is True.
    payload: Any = None
    decoded: bool = False
    source: UpstreamSource | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def app_successful(self) -> bool:
        """Decoded JSON with a success signal (eligible for caching)."""
        return self.decoded and looks_successful(self.payload)

    @classmethod
    def failure_sentinel(cls) -> UpstreamResponse:
        """The fixed 500 answer returned once every attempt has failed."""
        return cls(
            status_code=500,
            body=json.dumps(FAILURE_PAYLOAD).encode("utf-8"),
            headers={
                "content-type": "application/json",
                "access-control-allow-origin": "*",
            },
            payload=FAILURE_PAYLOAD,
            decoded=True,
        )
