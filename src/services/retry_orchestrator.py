"""Retry orchestrator -- one logical client request against the upstreams.

Per attempt (1..max_attempts):

    1. obtain a source from the selector (or use the pinned source);
    2. copy the caller's query onto the source's base URL, minus the
       routing parameters ``target`` and ``callback``; a URL without
       ``types`` is a caller mistake and fails at once with ClientError;
    3. GET it under the fetch deadline;
    4. transport failure / timeout / non-2xx  -> mark the source unhealthy,
       back off ``attempt x backoff_seconds`` and try again;
    5. 2xx -> read the body and return it unmodified.  A JSON body with a
       success signal marks the source healthy; a JSON application error
       or a non-JSON body leaves health untouched.

Backoff is linear in the attempt number, not exponential.

Once the budget is spent the request ends with the fixed 500 sentinel
(``{"code": 500, "message": "all sources unavailable", "data": []}``).
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping

import httpx
import structlog

from src.models.upstream import UpstreamResponse, UpstreamSource, looks_successful
from src.services.source_registry import SourceRegistry
from src.services.source_selector import SourceSelector
from src.utils.errors import (
    AllSourcesExhausted,
    ClientError,
    ProxyError,
    UpstreamPayloadAnomaly,
    UpstreamStatusError,
    UpstreamTransportError,
)
from src.utils.headers import cors_headers
from src.utils.logging import get_logger

# Query parameters consumed by the relay itself and never forwarded.
ROUTING_PARAMS = frozenset({"target", "callback"})
REQUIRED_PARAM = "types"
_DEFAULT_CONTENT_TYPE = "application/json; charset=utf-8"

_logger: structlog.BoundLogger = get_logger(__name__)


def forwardable_params(params: Mapping[str, str]) -> dict[str, str]:
    """Return *params* without the relay's own routing parameters."""
    return {key: value for key, value in params.items() if key not in ROUTING_PARAMS}


def build_upstream_url(base_url: str, params: Mapping[str, str]) -> httpx.URL:
    """Merge *params* onto *base_url*, overriding same-named base parameters.

    Raises
    ------
    ClientError
        If the resulting query has no ``types`` parameter.
    """
    url = httpx.URL(base_url).copy_merge_params(forwardable_params(params))
    if REQUIRED_PARAM not in url.params:
        raise ClientError(message="Missing types", status_code=400)
    return url


class RetryOrchestrator:
    """Executes upstream requests with failover, health updates and backoff.

    Parameters
    ----------
    selector:
        Chooses the source for each attempt.
    registry:
        Receives health updates for the source used by each attempt.
    http_client:
        Shared ``httpx.AsyncClient``.
    timeout:
        Per-attempt deadline in seconds (connect + full body read).
    backoff_seconds:
        Base delay; attempt *n* waits ``n x backoff_seconds`` after failing.
    default_user_agent:
        Sent upstream when the caller supplied no ``User-Agent``.
    """

    def __init__(
        self,
        selector: SourceSelector,
        registry: SourceRegistry,
        http_client: httpx.AsyncClient,
        timeout: float = 10.0,
        backoff_seconds: float = 1.0,
        default_user_agent: str = "Mozilla/5.0",
    ) -> None:
        self._selector = selector
        self._registry = registry
        self._http = http_client
        self._timeout = timeout
        self._backoff = backoff_seconds
        self._default_user_agent = default_user_agent

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        params: Mapping[str, str],
        *,
        max_attempts: int = 3,
        user_agent: str | None = None,
        pinned_source: UpstreamSource | None = None,
    ) -> UpstreamResponse:
        """Run one logical request; never raises for upstream failures.

        Parameters
        ----------
        params:
            The caller's query parameters.
        max_attempts:
            Upper bound on upstream calls.
        user_agent:
            Caller's ``User-Agent`` header, forwarded upstream.
        pinned_source:
            When set, every attempt goes to this source instead of asking
            the selector.

        Returns
        -------
        UpstreamResponse
            The first successful upstream response, or the 500 sentinel.

        Raises
        ------
        ClientError
            If the request lacks ``types`` (no upstream call is made).
        """
        try:
            return await self._run_attempts(
                params,
                max_attempts=max_attempts,
                user_agent=user_agent or self._default_user_agent,
                pinned_source=pinned_source,
            )
        except AllSourcesExhausted as exc:
            _logger.error(
                "all_sources_unavailable",
                attempts=exc.attempts,
                last_error=str(exc.last_error) if exc.last_error else None,
            )
            return UpstreamResponse.failure_sentinel()

    # ------------------------------------------------------------------
    # Attempt loop
    # ------------------------------------------------------------------

    async def _run_attempts(
        self,
        params: Mapping[str, str],
        *,
        max_attempts: int,
        user_agent: str,
        pinned_source: UpstreamSource | None,
    ) -> UpstreamResponse:
        last_error: ProxyError | None = None
        previous: UpstreamSource | None = None

        for attempt in range(1, max_attempts + 1):
            source = pinned_source or await self._selector.select_source()
            if previous is not None and source != previous:
                _logger.info(
                    "retrying_on_other_source",
                    attempt=attempt,
                    previous=previous.base_url,
                    current=source.base_url,
                )
            previous = source
            url = build_upstream_url(source.base_url, params)

            try:
                return await self._attempt(source, url, user_agent)
            except (UpstreamTransportError, UpstreamStatusError) as exc:
                await self._registry.mark_unhealthy(source.position)
                last_error = exc
                _logger.warning(
                    "upstream_attempt_failed",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    base_url=source.base_url,
                    error=exc.message,
                )

            if attempt < max_attempts:
                await asyncio.sleep(attempt * self._backoff)

        raise AllSourcesExhausted(attempts=max_attempts, last_error=last_error)

    async def _attempt(
        self,
        source: UpstreamSource,
        url: httpx.URL,
        user_agent: str,
    ) -> UpstreamResponse:
        headers = {"User-Agent": user_agent, "Accept": "application/json"}
        try:
            response = await asyncio.wait_for(
                self._http.get(url, headers=headers, timeout=self._timeout),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise UpstreamTransportError(
                message=f"Timed out after {self._timeout}s",
                source_name=source.base_url,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamTransportError(
                message=str(exc) or type(exc).__name__,
                source_name=source.base_url,
            ) from exc

        if not response.is_success:
            raise UpstreamStatusError(
                message=f"HTTP {response.status_code}",
                source_name=source.base_url,
                upstream_status=response.status_code,
            )

        body = response.content
        out_headers = cors_headers(response.headers, buffered=True)
        out_headers.setdefault("content-type", _DEFAULT_CONTENT_TYPE)

        try:
            payload = self._decode(body, source)
        except UpstreamPayloadAnomaly as exc:
            _logger.warning("upstream_payload_anomaly", base_url=source.base_url, error=exc.message)
            return UpstreamResponse(
                status_code=response.status_code,
                body=body,
                headers=out_headers,
                source=source,
            )

        if looks_successful(payload):
            await self._registry.mark_healthy(source.position)
        else:
            # Reachable upstream reporting an application error: not a
            # liveness signal either way.
            _logger.warning(
                "upstream_application_error",
                base_url=source.base_url,
                code=payload.get("code") if isinstance(payload, dict) else None,
            )

        return UpstreamResponse(
            status_code=response.status_code,
            body=body,
            headers=out_headers,
            payload=payload,
            decoded=True,
            source=source,
        )

    @staticmethod
    def _decode(body: bytes, source: UpstreamSource) -> Any:
        try:
            return json.loads(body)
        except ValueError as exc:
            raise UpstreamPayloadAnomaly(
                message="Upstream returned non-JSON data",
                source_name=source.base_url,
            ) from exc
