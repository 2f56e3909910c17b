"""Request coordinator -- top-level policy for every inbound request.

Routing:

    OPTIONS                      -> fixed 204 preflight, nothing else touched
    other than GET / HEAD        -> ClientError (405)
    ?target=<url>                -> media pass-through
    ?types=<cacheable kind>      -> response cache, then retry orchestrator
                                    (full budget, selector-chosen sources)
    ?types=<anything else>       -> retry orchestrator pinned to the primary
                                    source with a reduced budget, no cache

The cache key is derived from the source selected *before* the upstream
call, so a request that fails over mid-flight is still stored under the
key of the source it started on.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from starlette.responses import Response

from src.interfaces.cache_provider import ICacheProvider
from src.models.upstream import UpstreamResponse
from src.services.media_passthrough import MediaPassthrough
from src.services.retry_orchestrator import RetryOrchestrator
from src.services.source_registry import SourceRegistry
from src.services.source_selector import SourceSelector
from src.utils.errors import ClientError
from src.utils.headers import PREFLIGHT_HEADERS
from src.utils.logging import get_logger

_ALLOWED_METHODS = frozenset({"GET", "HEAD"})


def cache_key(base_url: str, params: Mapping[str, str]) -> str:
    """Deterministic key for a (source, query) pair.

    Parameter insertion order does not matter: the mapping is serialised
    with sorted keys.
    """
    return json.dumps(
        {"api": base_url, "params": dict(params)},
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )


def _dump_json(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class RequestCoordinator:
    """Applies cache and retry policy to one inbound request.

    Parameters
    ----------
    registry / selector / cache / orchestrator / media:
        Shared collaborators from the proxy context.
    ttl:
        Freshness window in seconds for cached search responses.
    cacheable_kind:
        ``types`` value eligible for caching.
    search_max_attempts:
        Retry budget for cacheable requests.
    direct_max_attempts:
        Retry budget for every other request kind.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        selector: SourceSelector,
        cache: ICacheProvider,
        orchestrator: RetryOrchestrator,
        media: MediaPassthrough,
        *,
        ttl: float = 300,
        cacheable_kind: str = "search",
        search_max_attempts: int = 3,
        direct_max_attempts: int = 2,
    ) -> None:
        self._registry = registry
        self._selector = selector
        self._cache = cache
        self._orchestrator = orchestrator
        self._media = media
        self._ttl = ttl
        self._cacheable_kind = cacheable_kind
        self._search_max_attempts = search_max_attempts
        self._direct_max_attempts = direct_max_attempts
        self._logger = get_logger(__name__)

    @property
    def cache_control(self) -> str:
        return f"public, max-age={int(self._ttl)}"

    async def handle(
        self,
        method: str,
        params: Mapping[str, str],
        headers: Mapping[str, str],
    ) -> Response:
        """Answer one inbound request.

        Parameters
        ----------
        method:
            HTTP method of the inbound request.
        params:
            Query parameters (last value wins for repeated names).
        headers:
            Inbound request headers, looked up with lower-case names.

        Raises
        ------
        ClientError
            For unsupported methods, missing ``types`` or a rejected
            media target.
        """
        method = method.upper()
        if method == "OPTIONS":
            return Response(status_code=204, headers=PREFLIGHT_HEADERS)
        if method not in _ALLOWED_METHODS:
            raise ClientError(message="Method not allowed", status_code=405)

        target = params.get("target")
        if target:
            return await self._media.stream(target, method, headers)

        user_agent = headers.get("user-agent")
        if params.get("types") == self._cacheable_kind:
            return await self._handle_cacheable(params, user_agent)

        upstream = await self._orchestrator.execute(
            params,
            max_attempts=self._direct_max_attempts,
            user_agent=user_agent,
            pinned_source=self._registry.primary,
        )
        return self._render(upstream)

    async def _handle_cacheable(
        self,
        params: Mapping[str, str],
        user_agent: str | None,
    ) -> Response:
        source = await self._selector.select_source()
        key = cache_key(source.base_url, params)

        entry = await self._cache.get(key)
        if entry is not None and entry.is_fresh(self._cache.now(), self._ttl):
            self._logger.info("cache_hit", base_url=source.base_url, types=params.get("types"))
            return Response(
                content=_dump_json(entry.payload),
                headers={
                    "content-type": "application/json; charset=utf-8",
                    "access-control-allow-origin": "*",
                    "x-cache": "HIT",
                    "cache-control": self.cache_control,
                },
            )

        upstream = await self._orchestrator.execute(
            params,
            max_attempts=self._search_max_attempts,
            user_agent=user_agent,
        )
        if not (upstream.ok and upstream.app_successful):
            return self._render(upstream)

        await self._cache.put(key, upstream.payload)
        self._logger.info("cache_miss_stored", base_url=source.base_url)
        headers = dict(upstream.headers)
        headers["x-cache"] = "MISS"
        headers["cache-control"] = self.cache_control
        return Response(
            content=_dump_json(upstream.payload),
            status_code=upstream.status_code,
            headers=headers,
        )

    @staticmethod
    def _render(upstream: UpstreamResponse) -> Response:
        return Response(
            content=upstream.body,
            status_code=upstream.status_code,
            headers=upstream.headers,
        )
