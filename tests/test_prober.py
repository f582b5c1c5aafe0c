from __future__ import annotations

import httpx
import pytest

from http_analytics.agent.prober import EndpointProber


@pytest.mark.asyncio
async def test_probe_records_status_and_headers() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        return httpx.Response(200, headers={"x-served-by": "edge-1"}, text="ok")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await EndpointProber(client).probe("https://svc.test/health")

    assert result.url == "https://svc.test/health"
    assert result.status == 200
    assert result.success is True
    assert result.error is None
    assert result.response_time_ms >= 0
    assert result.headers is not None and result.headers["x-served-by"] == "edge-1"


@pytest.mark.asyncio
async def test_probe_marks_5xx_as_failure() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503))) as client:
        result = await EndpointProber(client).probe("https://svc.test/")

    assert result.status == 503
    assert result.success is False
    assert result.error is None


@pytest.mark.asyncio
async def test_probe_follows_redirects() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"location": "https://svc.test/new"})
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await EndpointProber(client).probe("https://svc.test/old")

    assert result.status == 200
    assert result.success is True


@pytest.mark.asyncio
async def test_transport_failure_becomes_status_zero() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await EndpointProber(client).probe("https://down.test/")

    assert result.status == 0
    assert result.success is False
    assert result.error is not None and "ConnectError" in result.error
    assert result.headers is None


@pytest.mark.asyncio
async def test_timeout_becomes_status_zero() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await EndpointProber(client, timeout_seconds=0.1).probe("https://slow.test/")

    assert result.status == 0
    assert "ReadTimeout" in (result.error or "")


@pytest.mark.asyncio
async def test_unfollowed_3xx_is_not_success() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(304))) as client:
        result = await EndpointProber(client).probe("https://svc.test/cached")

    assert result.status == 304
    assert result.success is False
