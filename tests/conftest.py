"""Shared pytest fixtures for the relay test suite.

Upstreams are faked with ``httpx.MockTransport``: each test supplies a
handler per upstream host and the fixtures route requests to it while
recording every call.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import httpx
import pytest

from src.config.settings import Settings
from src.services.proxy_context import ProxyContext, build_context

SOURCE_A = "https://a.example/api.php"
SOURCE_B = "https://b.example/api.php"

Handler = Callable[[httpx.Request], "httpx.Response | Awaitable[httpx.Response]"]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class RecordingUpstreams:
    """Routes requests by host to per-host handlers and records them."""

    def __init__(self, handlers: dict[str, Handler] | None = None) -> None:
        self.handlers: dict[str, Handler] = dict(handlers or {})
        self.calls: list[httpx.Request] = []

    def calls_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.calls if r.url.host == host]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError("no route to host", request=request)
        result = handler(request)
        if not isinstance(result, httpx.Response):
            result = await result
        return result

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def json_handler(payload: Any, status_code: int = 200) -> Handler:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return _handler


def timeout_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectTimeout("timed out", request=request)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "upstream_sources": [SOURCE_A, SOURCE_B],
        "retry_backoff_seconds": 0.0,
        "background_tasks_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_context(
    upstreams: RecordingUpstreams,
    clock: FakeClock | None = None,
    **setting_overrides: Any,
) -> ProxyContext:
    return build_context(
        make_settings(**setting_overrides),
        http_client=upstreams.client(),
        timer=clock or FakeClock(),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def search_payload() -> dict[str, Any]:
    return {"code": 200, "data": [{"id": 1, "name": "Song"}]}
