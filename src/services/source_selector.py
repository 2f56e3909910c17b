"""Source selection policy.

Selection order:

    1. the active source, if its flag is healthy (no side effects);
    2. the first other healthy source in declaration order (becomes active);
    3. every source probed in order -- the first to pass becomes active;
    4. last resort: position 0, even though nothing passed.

Step 4 always returns *something*; callers still have to cope with the
upstream failing afterwards.
"""

from __future__ import annotations

from src.models.upstream import UpstreamSource
from src.services.health_prober import HealthProber
from src.services.source_registry import SourceRegistry
from src.utils.logging import get_logger


class SourceSelector:
    """Picks the upstream source for the next attempt."""

    def __init__(self, registry: SourceRegistry, prober: HealthProber) -> None:
        self._registry = registry
        self._prober = prober
        self._logger = get_logger(__name__)

    async def select_source(self) -> UpstreamSource:
        source = await self._registry.claim_healthy()
        if source is not None:
            return source

        self._logger.warning("no_healthy_source_reprobing", sources=len(self._registry.sources))
        for candidate in self._registry.sources:
            if await self._prober.probe(candidate):
                return await self._registry.activate(candidate.position)

        self._logger.error(
            "all_probes_failed_using_primary", base_url=self._registry.primary.base_url
        )
        return await self._registry.activate(0)

    async def probe_all(self) -> None:
        """Re-probe every source in order (periodic health check)."""
        self._logger.info("health_check_started", sources=len(self._registry.sources))
        for source in self._registry.sources:
            await self._prober.probe(source)
        self._logger.info("health_check_complete", sources=self._registry.snapshot())
