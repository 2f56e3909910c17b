"""Unit tests for RetryOrchestrator and its URL helpers."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.models.upstream import FAILURE_PAYLOAD
from src.services.proxy_context import build_context
from src.services.retry_orchestrator import build_upstream_url, forwardable_params
from src.utils.errors import ClientError
from tests.conftest import (
    RecordingUpstreams,
    json_handler,
    make_context,
    make_settings,
    timeout_handler,
)

SEARCH = {"types": "search", "source": "netease", "name": "hello"}


# ======================================================================
# URL helpers
# ======================================================================


class TestBuildUpstreamUrl:
    def test_routing_params_are_not_forwarded(self) -> None:
        params = forwardable_params({"types": "url", "callback": "cb", "target": "x", "id": "7"})
        assert params == {"types": "url", "id": "7"}

    def test_params_merge_onto_base_query(self) -> None:
        url = build_upstream_url("https://a.example/meting/?server=netease", {"types": "search"})
        assert url.params["server"] == "netease"
        assert url.params["types"] == "search"
        assert url.path == "/meting/"

    def test_caller_param_overrides_base_param(self) -> None:
        url = build_upstream_url("https://a.example/?types=lyric", {"types": "search"})
        assert url.params.get_list("types") == ["search"]

    def test_missing_types_is_client_error(self) -> None:
        with pytest.raises(ClientError) as exc_info:
            build_upstream_url("https://a.example/", {"name": "x", "callback": "cb"})
        assert exc_info.value.status_code == 400


# ======================================================================
# execute()
# ======================================================================


class TestRetryOrchestrator:
    @pytest.mark.asyncio
    async def test_success_returns_body_unmodified_and_marks_healthy(self) -> None:
        raw = b'{"code": 200, "data": [{"id": 1}]}'
        upstreams = RecordingUpstreams(
            {"a.example": lambda r: httpx.Response(200, content=raw, headers={"etag": "v1"})}
        )
        ctx = make_context(upstreams)
        await ctx.registry.mark_unhealthy(0)

        result = await ctx.orchestrator.execute(SEARCH, pinned_source=ctx.registry.primary)

        assert result.status_code == 200
        assert result.body == raw
        assert result.payload == {"code": 200, "data": [{"id": 1}]}
        assert result.headers["etag"] == "v1"
        assert result.headers["access-control-allow-origin"] == "*"
        assert result.headers["cache-control"] == "no-store"
        assert ctx.registry.is_healthy(0) is True

    @pytest.mark.asyncio
    async def test_forwards_user_agent_and_accept(self) -> None:
        upstreams = RecordingUpstreams({"a.example": json_handler({"code": 200})})
        ctx = make_context(upstreams)

        await ctx.orchestrator.execute(SEARCH, user_agent="Player/2.0")
        await ctx.orchestrator.execute(SEARCH)

        first, second = upstreams.calls
        assert first.headers["user-agent"] == "Player/2.0"
        assert first.headers["accept"] == "application/json"
        assert second.headers["user-agent"] == "Mozilla/5.0"

    @pytest.mark.asyncio
    async def test_always_failing_transport_returns_sentinel(self) -> None:
        upstreams = RecordingUpstreams(
            {"a.example": timeout_handler, "b.example": timeout_handler}
        )
        ctx = make_context(upstreams)
        # Keep the selector from probing so only attempt calls are counted.
        ctx.prober.probe = AsyncMock(return_value=False)

        result = await ctx.orchestrator.execute(SEARCH, max_attempts=3)

        assert result.status_code == 500
        assert json.loads(result.body) == FAILURE_PAYLOAD
        assert result.headers["access-control-allow-origin"] == "*"
        assert len(upstreams.calls) == 3

    @pytest.mark.asyncio
    async def test_error_status_marks_unhealthy_and_retries(self) -> None:
        upstreams = RecordingUpstreams(
            {
                "a.example": json_handler({"error": "down"}, status_code=502),
                "b.example": json_handler({"code": 200, "data": []}),
            }
        )
        ctx = make_context(upstreams)

        result = await ctx.orchestrator.execute(SEARCH, max_attempts=3)

        assert result.status_code == 200
        assert result.source is not None and result.source.position == 1
        assert ctx.registry.is_healthy(0) is False
        assert ctx.registry.is_healthy(1) is True
        assert len(upstreams.calls) == 2

    @pytest.mark.asyncio
    async def test_pinned_source_is_used_for_every_attempt(self) -> None:
        upstreams = RecordingUpstreams(
            {"a.example": timeout_handler, "b.example": json_handler({"code": 200})}
        )
        ctx = make_context(upstreams)

        result = await ctx.orchestrator.execute(
            {"types": "url", "id": "1"}, max_attempts=2, pinned_source=ctx.registry.primary
        )

        assert result.status_code == 500
        assert len(upstreams.calls_to("a.example")) == 2
        assert upstreams.calls_to("b.example") == []
        assert ctx.registry.is_healthy(0) is False

    @pytest.mark.asyncio
    async def test_application_error_leaves_health_unchanged(self) -> None:
        upstreams = RecordingUpstreams({"a.example": json_handler({"code": 400, "msg": "bad id"})})
        ctx = make_context(upstreams)
        await ctx.registry.mark_unhealthy(0)

        result = await ctx.orchestrator.execute(
            {"types": "url", "id": "x"}, pinned_source=ctx.registry.primary
        )

        assert result.status_code == 200
        assert result.payload == {"code": 400, "msg": "bad id"}
        assert result.app_successful is False
        assert ctx.registry.is_healthy(0) is False
        assert len(upstreams.calls) == 1

    @pytest.mark.asyncio
    async def test_non_json_body_is_returned_raw_without_retry(self) -> None:
        upstreams = RecordingUpstreams(
            {"a.example": lambda r: httpx.Response(200, text="lyrics plain text")}
        )
        ctx = make_context(upstreams)
        await ctx.registry.mark_unhealthy(0)

        result = await ctx.orchestrator.execute(
            {"types": "lyric", "id": "1"}, pinned_source=ctx.registry.primary
        )

        assert result.status_code == 200
        assert result.body == b"lyrics plain text"
        assert result.decoded is False
        assert ctx.registry.is_healthy(0) is False
        assert len(upstreams.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_types_fails_before_any_upstream_call(self) -> None:
        upstreams = RecordingUpstreams({"a.example": json_handler({"code": 200})})
        ctx = make_context(upstreams)

        with pytest.raises(ClientError):
            await ctx.orchestrator.execute({"id": "1"}, pinned_source=ctx.registry.primary)
        assert upstreams.calls == []

    @pytest.mark.asyncio
    async def test_fetch_deadline_counts_as_transport_failure(self) -> None:
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={"code": 200})

        upstreams = RecordingUpstreams({"a.example": slow})
        ctx = make_context(upstreams, fetch_timeout_seconds=0.05)

        result = await ctx.orchestrator.execute(
            SEARCH, max_attempts=1, pinned_source=ctx.registry.primary
        )

        assert result.status_code == 500
        assert ctx.registry.is_healthy(0) is False

    @pytest.mark.asyncio
    async def test_backoff_is_linear_in_attempt_number(self) -> None:
        upstreams = RecordingUpstreams({"a.example": timeout_handler})
        ctx = make_context(upstreams, retry_backoff_seconds=1.0)

        with patch(
            "src.services.retry_orchestrator.asyncio.sleep", new=AsyncMock()
        ) as sleep_mock:
            await ctx.orchestrator.execute(
                SEARCH, max_attempts=3, pinned_source=ctx.registry.primary
            )

        assert [c.args[0] for c in sleep_mock.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_no_backoff_after_success(self) -> None:
        upstreams = RecordingUpstreams({"a.example": json_handler({"code": 200})})
        ctx = make_context(upstreams, retry_backoff_seconds=1.0)

        with patch(
            "src.services.retry_orchestrator.asyncio.sleep", new=AsyncMock()
        ) as sleep_mock:
            await ctx.orchestrator.execute(SEARCH, pinned_source=ctx.registry.primary)

        sleep_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_call_carries_fetch_deadline_as_httpx_timeout(self) -> None:
        seen: list[dict[str, float | None]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.extensions["timeout"])
            return httpx.Response(200, json={"code": 200})

        upstreams = RecordingUpstreams({"a.example": handler})
        ctx = make_context(upstreams, fetch_timeout_seconds=12.5)

        await ctx.orchestrator.execute(SEARCH, pinned_source=ctx.registry.primary)

        assert seen[0]["read"] == 12.5
        assert seen[0]["connect"] == 12.5


# ======================================================================
# Deadline against a real socket
# ======================================================================


async def _serve_after(delay: float, body: bytes) -> asyncio.Server:
    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await reader.readuntil(b"\r\n\r\n")
        await asyncio.sleep(delay)
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: application/json\r\n"
            + f"Content-Length: {len(body)}\r\n".encode()
            + b"Connection: close\r\n\r\n"
            + body
        )
        await writer.drain()
        writer.close()

    return await asyncio.start_server(handle, "127.0.0.1", 0)


class TestBuiltClientDeadline:
    @pytest.mark.asyncio
    async def test_upstream_slower_than_httpx_default_within_fetch_deadline(self) -> None:
        body = json.dumps({"code": 200, "data": []}).encode()
        server = await _serve_after(5.5, body)
        port = server.sockets[0].getsockname()[1]
        try:
            ctx = build_context(
                make_settings(
                    upstream_sources=[f"http://127.0.0.1:{port}/api.php"],
                    fetch_timeout_seconds=10.0,
                )
            )
            result = await ctx.orchestrator.execute(
                SEARCH, max_attempts=1, pinned_source=ctx.registry.primary
            )
            await ctx.aclose()
        finally:
            server.close()
            await server.wait_closed()

        assert result.status_code == 200
        assert result.payload == {"code": 200, "data": []}
        assert ctx.registry.is_healthy(0) is True

    @pytest.mark.asyncio
    async def test_built_client_timeout_follows_settings(self) -> None:
        ctx = build_context(make_settings(fetch_timeout_seconds=10.0))
        try:
            assert ctx.http_client.timeout.read == 10.0
            assert ctx.http_client.timeout.connect == 10.0
        finally:
            await ctx.aclose()
