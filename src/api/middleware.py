"""API middleware -- request logging and error handling.

Starlette middleware is a stack (last added, first executed).  In main.py:

    app.add_middleware(ErrorHandlingMiddleware)    # inner
    app.add_middleware(RequestLoggingMiddleware)   # outermost

so the request log records the final status, including errors that
ErrorHandlingMiddleware turned into JSON bodies.

CORS is not delegated to Starlette's CORSMiddleware: the request
coordinator answers preflights itself and every relay response already
carries ``Access-Control-Allow-Origin: *``.
"""

from __future__ import annotations

import time

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import ClientError, ProxyError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                types=request.query_params.get("types"),
                status=status_code,
                duration_ms=duration_ms,
                x_cache=response.headers.get("x-cache") if response else None,
            )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn ``ProxyError`` subclasses into JSON ``ErrorResponse`` bodies.

    The status code comes from the error itself (400/405 for caller
    mistakes, 502 for an unreachable media host).  Stack traces stay in
    the server log.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except ProxyError as exc:
            log = _logger.warning if isinstance(exc, ClientError) else _logger.error
            log(
                "request_error",
                error_type=type(exc).__name__,
                message=exc.message,
                source=exc.source_name,
                status=exc.status_code,
                path=str(request.url.path),
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(
                status_code=exc.status_code,
                content=body.model_dump(),
                headers={"Access-Control-Allow-Origin": "*"},
            )
