"""Source registry -- the ordered upstream list plus advisory health state.

The registry owns three pieces of process-wide state:

    sources  -- immutable ordered list of :class:`UpstreamSource`
    healthy  -- one last-known-good flag per source (all True at start)
    active   -- index of the source currently preferred for traffic

Health flags are advisory: a stale "healthy" costs one wasted attempt,
never correctness.  Every read-modify-write of ``healthy`` / ``active``
still happens under one ``asyncio.Lock`` so concurrent requests never see
a half-applied switch.  The lock is never held across network I/O.
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

import structlog

from src.models.upstream import UpstreamSource
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


class SourceRegistry:
    """Ordered upstream sources with per-source health flags.

    Parameters
    ----------
    base_urls:
        Upstream base URLs in priority order.  Position 0 is the primary.

    Raises
    ------
    ConfigurationError
        If *base_urls* is empty.
    """

    def __init__(self, base_urls: Sequence[str]) -> None:
        if not base_urls:
            raise ConfigurationError(message="At least one upstream source is required")
        self._sources: tuple[UpstreamSource, ...] = tuple(
            UpstreamSource(base_url=url, position=idx) for idx, url in enumerate(base_urls)
        )
        self._healthy: list[bool] = [True] * len(self._sources)
        self._active = 0
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def sources(self) -> tuple[UpstreamSource, ...]:
        return self._sources

    @property
    def primary(self) -> UpstreamSource:
        return self._sources[0]

    @property
    def active_position(self) -> int:
        return self._active

    def is_healthy(self, position: int) -> bool:
        return self._healthy[position]

    def snapshot(self) -> list[dict[str, Any]]:
        """Point-in-time copy of every source's state, for ``/health``."""
        return [
            {
                "position": src.position,
                "base_url": src.base_url,
                "healthy": self._healthy[src.position],
                "active": src.position == self._active,
            }
            for src in self._sources
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def set_health(self, position: int, healthy: bool) -> None:
        async with self._lock:
            previous = self._healthy[position]
            self._healthy[position] = healthy
        if previous != healthy:
            _logger.info(
                "source_health_changed",
                position=position,
                base_url=self._sources[position].base_url,
                healthy=healthy,
            )

    async def mark_healthy(self, position: int) -> None:
        await self.set_health(position, True)

    async def mark_unhealthy(self, position: int) -> None:
        await self.set_health(position, False)

    async def activate(self, position: int) -> UpstreamSource:
        """Point ``active`` at *position* and return that source."""
        async with self._lock:
            self._activate_locked(position)
        return self._sources[position]

    async def claim_healthy(self) -> UpstreamSource | None:
        """Return a source already known to be healthy, or ``None``.

        Sticky: the active source wins when its flag is set, with no state
        change at all.  Otherwise the other sources are scanned in
        declaration order and the first healthy one becomes active.
        """
        async with self._lock:
            if self._healthy[self._active]:
                return self._sources[self._active]
            for src in self._sources:
                if src.position != self._active and self._healthy[src.position]:
                    self._activate_locked(src.position)
                    return src
        return None

    def _activate_locked(self, position: int) -> None:
        if position != self._active:
            _logger.info(
                "source_switched",
                previous=self._sources[self._active].base_url,
                current=self._sources[position].base_url,
            )
        self._active = position
