"""Relay API layer -- routes, schemas, and middleware."""

from src.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from src.api.routes import router
from src.api.schemas import ErrorResponse, HealthResponse, SourceHealth

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "router",
    "ErrorResponse",
    "HealthResponse",
    "SourceHealth",
]
