from __future__ import annotations

import time

import httpx
from loguru import logger

from cacheprobe.config import settings
from cacheprobe.models.probe import FetchResult, Timing

DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


async def fetch(
    url: str,
    *,
    timeout_ms: int,
    headers: dict[str, str] | None = None,
) -> FetchResult:
    """GET ``url`` and time it. Network failures are returned in ``error``, never raised."""
    request_headers = {
        "User-Agent": settings.user_agent,
        "Accept": DEFAULT_ACCEPT,
    }
    request_headers.update(headers or {})

    t0 = time.perf_counter()
    try:
        async with httpx.AsyncClient(
            timeout=timeout_ms / 1000,
            follow_redirects=True,
        ) as client:
            async with client.stream("GET", url, headers=request_headers) as response:
                ttfb = _elapsed_ms(t0)
                await response.aread()
                body = response.text
                total = _elapsed_ms(t0)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        message = str(exc) or exc.__class__.__name__
        logger.debug(f"Fetch failed for {url}: {message}")
        return FetchResult(url=url, timing=Timing(total=_elapsed_ms(t0)), error=message)

    return FetchResult(
        url=str(response.url),
        status_code=response.status_code,
        headers={k.lower(): v for k, v in response.headers.items()},
        body=body,
        timing=Timing(ttfb=ttfb, total=total),
    )
