from __future__ import annotations

import asyncio

from cacheprobe.config import settings
from cacheprobe.models.probe import CacheProbeResult, DoubleHit, FetchResult, ProbeSample
from cacheprobe.tools import http_client
from cacheprobe.tools.web_utils import detect_cache_hit


def to_sample(result: FetchResult) -> ProbeSample:
    return ProbeSample(
        status_code=result.status_code,
        ttfb=result.timing.ttfb,
        headers=result.headers,
        cache_hit=detect_cache_hit(result.headers),
        error=result.error,
    )


async def probe_cache(
    url: str,
    *,
    timeout_ms: int,
    delay_ms: int | None = None,
) -> CacheProbeResult:
    """Double-hit probe: request ``url`` twice and keep both samples.

    The first request warms any cache in front of the origin; the second shows
    whether the warmed copy is served.
    """
    pause_ms = settings.cache_probe_delay_ms if delay_ms is None else delay_ms

    first = await http_client.fetch(url, timeout_ms=timeout_ms)
    await asyncio.sleep(pause_ms / 1000)
    second = await http_client.fetch(url, timeout_ms=timeout_ms)

    return CacheProbeResult(
        url=url,
        double_hit=DoubleHit(
            first_request=to_sample(first),
            second_request=to_sample(second),
            delay_ms=pause_ms,
        ),
    )
