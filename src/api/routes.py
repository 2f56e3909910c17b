"""FastAPI routes for the relay.

Endpoint             Method            Description
-------------------------------------------------------------------------
/health              GET               Source health snapshot (relayed
                                       instead when ?types= or ?target=
                                       is present)
/{any path}          GET/HEAD          ?types=... -> upstream APIs (cached
                                       for the cacheable kind);
                                       ?target=... -> media pass-through
/{any path}          OPTIONS           CORS preflight (204)
/{any path}          anything else     405

The catch-all mirrors an edge function mounted on a single path: the path
itself is ignored, only method and query string matter.  The shared
:class:`ProxyContext` is read from ``app.state`` via ``Depends``.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, Response

from src.api.schemas import HealthResponse, SourceHealth
from src.services.proxy_context import ProxyContext
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

APP_VERSION = "0.1.0"

router = APIRouter()

_RELAY_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]
# Query parameters that make a request a relay request on any path.
_RELAY_PARAMS = frozenset({"types", "target"})


def _get_context(request: Request) -> ProxyContext:
    return request.app.state.context


ContextDep = Annotated[ProxyContext, Depends(_get_context)]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Upstream source health",
)
async def health_check(request: Request, context: ContextDep) -> HealthResponse | Response:
    """Return the health flag of every upstream source and the active one.

    A relay query (``types`` or ``target``) sent to this path is relayed
    like on any other path.
    """
    if any(name in request.query_params for name in _RELAY_PARAMS):
        return await relay(request, context)

    snapshot = context.registry.snapshot()
    sources = [SourceHealth(**entry) for entry in snapshot]

    if any(s.active and s.healthy for s in sources):
        status = "healthy"
    elif any(s.healthy for s in sources):
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(
        status=status,
        version=APP_VERSION,
        cache_entries=len(context.cache),
        sources=sources,
    )


@router.api_route("/{path:path}", methods=_RELAY_METHODS, include_in_schema=False)
async def relay(request: Request, context: ContextDep) -> Response:
    """Hand the request to the coordinator."""
    return await context.coordinator.handle(
        request.method,
        dict(request.query_params),
        request.headers,
    )
