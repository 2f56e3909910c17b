"""Media pass-through for a single allow-listed audio host.

A stateless pipe: the caller passes a raw ``target`` URL, the host is
checked against the allow-list pattern, and the upstream bytes are
streamed back untouched.  ``Range`` is forwarded so players can seek.
"""

from __future__ import annotations

import re
from typing import Mapping

import httpx
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from src.utils.errors import ClientError, UpstreamTransportError
from src.utils.headers import cors_headers
from src.utils.logging import get_logger

_DEFAULT_MEDIA_CACHE_CONTROL = "public, max-age=3600"


class MediaPassthrough:
    """Validates media targets and streams them back to the caller.

    Parameters
    ----------
    http_client:
        Shared ``httpx.AsyncClient``.
    host_pattern:
        Regular expression a target's hostname must match (case-insensitive).
    referer:
        Fixed ``Referer`` the media host expects.
    default_user_agent:
        Sent when the caller supplied no ``User-Agent``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        host_pattern: str = r"(^|\.)kuwo\.cn$",
        referer: str = "https://www.kuwo.cn/",
        default_user_agent: str = "Mozilla/5.0",
    ) -> None:
        self._http = http_client
        self._host_re = re.compile(host_pattern, re.IGNORECASE)
        self._referer = referer
        self._default_user_agent = default_user_agent
        self._logger = get_logger(__name__)

    def is_allowed_host(self, hostname: str) -> bool:
        return bool(hostname) and self._host_re.search(hostname) is not None

    def normalize_target(self, raw_url: str) -> httpx.URL | None:
        """Return the target rewritten to plain http, or ``None`` if rejected."""
        try:
            parsed = httpx.URL(raw_url)
        except (httpx.InvalidURL, TypeError):
            return None
        if parsed.scheme not in ("http", "https"):
            return None
        if not self.is_allowed_host(parsed.host):
            return None
        return parsed.copy_with(scheme="http")

    async def stream(
        self,
        target: str,
        method: str,
        request_headers: Mapping[str, str],
    ) -> StreamingResponse:
        """Fetch *target* with *method* and stream the body back.

        Raises
        ------
        ClientError
            If the target is malformed or its host is not allow-listed.
        UpstreamTransportError
            If the media host cannot be reached.
        """
        url = self.normalize_target(target)
        if url is None:
            raise ClientError(message="Invalid target", status_code=400)

        headers = {
            "User-Agent": request_headers.get("user-agent") or self._default_user_agent,
            "Referer": self._referer,
        }
        range_header = request_headers.get("range")
        if range_header:
            headers["Range"] = range_header

        upstream_request = self._http.build_request(method, url, headers=headers)
        try:
            upstream = await self._http.send(upstream_request, stream=True)
        except httpx.HTTPError as exc:
            raise UpstreamTransportError(
                message=str(exc) or type(exc).__name__,
                source_name=url.host,
            ) from exc

        self._logger.info(
            "media_stream_opened",
            host=url.host,
            status=upstream.status_code,
            ranged=bool(range_header),
        )
        return StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            headers=cors_headers(
                upstream.headers, default_cache_control=_DEFAULT_MEDIA_CACHE_CONTROL
            ),
            background=BackgroundTask(upstream.aclose),
        )
