"""Response-header allow-listing shared by the API and media paths.

Only a fixed subset of upstream headers is ever passed back to callers;
``Access-Control-Allow-Origin: *`` is always forced on top.
"""

from __future__ import annotations

from typing import Mapping

SAFE_RESPONSE_HEADERS = frozenset(
    {
        "content-type",
        "cache-control",
        "accept-ranges",
        "content-length",
        "content-range",
        "etag",
        "last-modified",
        "expires",
    }
)

# Length/range describe the raw upstream bytes; a buffered body re-sent by
# the relay gets its own content-length from the ASGI layer.
_BUFFERED_EXCLUDED = frozenset({"content-length", "content-range"})

PREFLIGHT_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,HEAD,OPTIONS",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Max-Age": "86400",
}


def cors_headers(
    upstream: Mapping[str, str] | None = None,
    *,
    buffered: bool = False,
    default_cache_control: str = "no-store",
) -> dict[str, str]:
    """Filter *upstream* headers through the allow-list and force CORS.

    Parameters
    ----------
    upstream:
        Headers received from the upstream response (any mapping with
        case-insensitive or lower-case keys).
    buffered:
        ``True`` when the relay re-sends a fully read body; drops the
        byte-level ``content-length`` / ``content-range`` headers.
    default_cache_control:
        Value used when upstream sent no ``cache-control``.
    """
    headers: dict[str, str] = {}
    if upstream is not None:
        for key, value in upstream.items():
            name = key.lower()
            if name not in SAFE_RESPONSE_HEADERS:
                continue
            if buffered and name in _BUFFERED_EXCLUDED:
                continue
            headers[name] = value
    headers.setdefault("cache-control", default_cache_control)
    headers["access-control-allow-origin"] = "*"
    return headers
