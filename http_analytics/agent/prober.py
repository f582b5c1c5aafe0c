from __future__ import annotations

import time

import httpx

from http_analytics.models import ProbeResult


DEFAULT_PROBE_TIMEOUT_SECONDS = 10.0


class EndpointProber:
    """Issues single bounded GET probes; never retries."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    ) -> None:
        self.timeout_seconds = float(timeout_seconds)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()

    async def probe(self, url: str) -> ProbeResult:
        started = time.perf_counter()
        try:
            resp = await self.client.get(url, follow_redirects=True, timeout=self.timeout_seconds)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            return ProbeResult(
                url=url,
                status=0,
                response_time_ms=round(elapsed_ms, 3),
                timestamp=time.time(),
                success=False,
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
            )

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return ProbeResult(
            url=url,
            status=resp.status_code,
            response_time_ms=round(elapsed_ms, 3),
            timestamp=time.time(),
            success=resp.is_success,
            headers={k: v for k, v in resp.headers.items()},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
