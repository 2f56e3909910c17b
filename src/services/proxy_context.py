"""Process-wide proxy context -- construction, startup and teardown.

Everything with process lifetime (the shared HTTP client, the source
registry, the response cache and the two maintenance jobs) is built once
here and handed to the API layer through ``app.state.context``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from src.config.settings import Settings
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.services.health_prober import HealthProber
from src.services.media_passthrough import MediaPassthrough
from src.services.request_coordinator import RequestCoordinator
from src.services.retry_orchestrator import RetryOrchestrator
from src.services.source_registry import SourceRegistry
from src.services.source_selector import SourceSelector
from src.utils.concurrency import PeriodicTask
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger

_logger = get_logger(__name__)


@dataclass
class ProxyContext:
    """All shared state and services of one relay process."""

    http_client: httpx.AsyncClient
    registry: SourceRegistry
    prober: HealthProber
    selector: SourceSelector
    cache: MemoryCacheProvider
    orchestrator: RetryOrchestrator
    media: MediaPassthrough
    coordinator: RequestCoordinator
    background_tasks: list[PeriodicTask] = field(default_factory=list)

    async def start(self) -> None:
        """Launch the periodic maintenance jobs."""
        for task in self.background_tasks:
            task.start()

    async def aclose(self) -> None:
        """Stop background jobs and release the HTTP client."""
        for task in self.background_tasks:
            await task.stop()
        await self.http_client.aclose()
        _logger.info("proxy_context_closed")


def build_context(
    settings: Settings,
    config: dict[str, Any] | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    timer: Callable[[], float] = time.monotonic,
) -> ProxyContext:
    """Construct every component of the relay.

    Parameters
    ----------
    settings:
        Environment-derived settings.
    config:
        Merged YAML configuration (see :func:`src.config.loader.load_config`).
    http_client:
        Optional pre-built client (tests inject one with a mock transport).
    timer:
        Clock shared by the cache and the freshness check.

    Raises
    ------
    ConfigurationError
        If no upstream sources are configured.
    """
    config = config or {}
    sources = list(settings.upstream_sources) or list(
        config.get("upstream", {}).get("sources", [])
    )
    if not sources:
        raise ConfigurationError(message="No upstream sources configured")
    probe_params = config.get("probe", {}).get("params")

    # Per-phase httpx timeouts must not undercut the fetch deadline.
    client = http_client or httpx.AsyncClient(
        timeout=settings.fetch_timeout_seconds,
        follow_redirects=True,
    )

    registry = SourceRegistry(sources)
    prober = HealthProber(
        registry,
        client,
        timeout=settings.probe_timeout_seconds,
        probe_params={k: str(v) for k, v in probe_params.items()} if probe_params else None,
        user_agent=settings.default_user_agent,
    )
    selector = SourceSelector(registry, prober)
    cache = MemoryCacheProvider(ttl=settings.cache_ttl_seconds, timer=timer)
    orchestrator = RetryOrchestrator(
        selector,
        registry,
        client,
        timeout=settings.fetch_timeout_seconds,
        backoff_seconds=settings.retry_backoff_seconds,
        default_user_agent=settings.default_user_agent,
    )
    media = MediaPassthrough(
        client,
        host_pattern=settings.media_host_pattern,
        referer=settings.media_referer,
        default_user_agent=settings.default_user_agent,
    )
    coordinator = RequestCoordinator(
        registry,
        selector,
        cache,
        orchestrator,
        media,
        ttl=settings.cache_ttl_seconds,
        cacheable_kind=settings.cacheable_query_kind,
        search_max_attempts=settings.search_max_attempts,
        direct_max_attempts=settings.direct_max_attempts,
    )

    background_tasks: list[PeriodicTask] = []
    if settings.background_tasks_enabled:
        background_tasks = [
            PeriodicTask("cache_sweep", settings.cache_sweep_interval_seconds, cache.sweep),
            PeriodicTask(
                "health_check", settings.health_check_interval_seconds, selector.probe_all
            ),
        ]

    _logger.info(
        "proxy_context_built",
        sources=len(sources),
        cache_ttl_s=settings.cache_ttl_seconds,
        background_tasks=[t.name for t in background_tasks],
    )
    return ProxyContext(
        http_client=client,
        registry=registry,
        prober=prober,
        selector=selector,
        cache=cache,
        orchestrator=orchestrator,
        media=media,
        coordinator=coordinator,
        background_tasks=background_tasks,
    )
