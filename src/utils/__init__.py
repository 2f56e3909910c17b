"""Utility modules for the relay.

- **errors** -- exception hierarchy rooted at ProxyError; each error knows
  the HTTP status it maps to at the API boundary.
- **concurrency** -- PeriodicTask, the cancellable background loop used for
  cache sweeps and health checks.
- **headers** -- response-header allow-list and CORS helpers.
- **logging** -- structlog setup with console/JSON renderers.
"""

from src.utils.concurrency import PeriodicTask
from src.utils.errors import (
    AllSourcesExhausted,
    ClientError,
    ConfigurationError,
    ProxyError,
    UpstreamPayloadAnomaly,
    UpstreamStatusError,
    UpstreamTransportError,
)
from src.utils.headers import PREFLIGHT_HEADERS, SAFE_RESPONSE_HEADERS, cors_headers
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "PREFLIGHT_HEADERS",
    "SAFE_RESPONSE_HEADERS",
    "AllSourcesExhausted",
    "ClientError",
    "ConfigurationError",
    "PeriodicTask",
    "ProxyError",
    "UpstreamPayloadAnomaly",
    "UpstreamStatusError",
    "UpstreamTransportError",
    "configure_logging",
    "cors_headers",
    "get_logger",
]
