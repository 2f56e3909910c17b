"""Health prober -- one synthetic search query per upstream source.

A probe is the full health signal: its result overwrites the source's flag
unconditionally, with no averaging or hysteresis.  The probe runs under its
own deadline; a timeout is treated like any other transport failure.
"""

from __future__ import annotations

import asyncio
from typing import Mapping

import httpx

from src.models.upstream import UpstreamSource, looks_successful
from src.services.source_registry import SourceRegistry
from src.utils.logging import get_logger

# Innocuous query used when no probe parameters are configured.
DEFAULT_PROBE_PARAMS: dict[str, str] = {
    "types": "search",
    "source": "netease",
    "keywords": "test",
    "limit": "1",
}


class HealthProber:
    """Probes upstream sources and records the outcome in the registry.

    Parameters
    ----------
    registry:
        Registry whose health flags are overwritten by each probe.
    http_client:
        Shared ``httpx.AsyncClient``.
    timeout:
        Probe deadline in seconds.
    probe_params:
        Query parameters of the synthetic search.
    user_agent:
        ``User-Agent`` sent with every probe.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        http_client: httpx.AsyncClient,
        timeout: float = 5.0,
        probe_params: Mapping[str, str] | None = None,
        user_agent: str = "Mozilla/5.0",
    ) -> None:
        self._registry = registry
        self._http = http_client
        self._timeout = timeout
        self._params = dict(probe_params or DEFAULT_PROBE_PARAMS)
        self._user_agent = user_agent
        self._logger = get_logger(__name__)

    async def probe(self, source: UpstreamSource) -> bool:
        """Probe *source*, store the verdict on the registry and return it."""
        healthy = await self._check(source)
        await self._registry.set_health(source.position, healthy)
        return healthy

    async def _check(self, source: UpstreamSource) -> bool:
        url = httpx.URL(source.base_url).copy_merge_params(self._params)
        try:
            response = await asyncio.wait_for(
                self._http.get(
                    url,
                    headers={"User-Agent": self._user_agent},
                    timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            self._logger.warning(
                "probe_failed",
                base_url=source.base_url,
                error=str(exc) or type(exc).__name__,
            )
            return False

        if not response.is_success:
            self._logger.warning(
                "probe_failed", base_url=source.base_url, status=response.status_code
            )
            return False

        try:
            payload = response.json()
        except ValueError:
            self._logger.warning("probe_undecodable_body", base_url=source.base_url)
            return False

        healthy = looks_successful(payload)
        self._logger.debug("probe_complete", base_url=source.base_url, healthy=healthy)
        return healthy
