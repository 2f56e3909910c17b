"""Relay FastAPI application entry point.

Builds the process-wide :class:`ProxyContext` (registry, cache, HTTP client,
maintenance jobs) in the lifespan, stores it on ``app.state.context`` and
mounts the catch-all relay router.  Configuration comes from ``.env`` and
``config/config.yaml``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from src.api.routes import APP_VERSION
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.settings import Settings
from src.services.proxy_context import ProxyContext, build_context
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build the proxy context on startup (unless one was injected) and tear
    it down on shutdown."""
    context: ProxyContext | None = getattr(application.state, "context", None)
    if context is None:
        context = build_context(settings, load_config(settings=settings))
        application.state.context = context

    await context.start()
    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        sources=[s.base_url for s in context.registry.sources],
    )

    yield

    await context.aclose()
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(context: ProxyContext | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Parameters
    ----------
    context:
        Pre-built proxy context; when omitted the lifespan builds one from
        the environment.
    """
    application = FastAPI(
        title="music-api-relay",
        version=APP_VERSION,
        description=(
            "Single stable endpoint in front of several interchangeable "
            "music search APIs, with health-aware failover, retries and a "
            "short-lived search cache."
        ),
        lifespan=_lifespan,
    )
    if context is not None:
        application.state.context = context

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
