from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import httpx

from cacheprobe.config import settings
from cacheprobe.models.probe import DnsResult

RECORD_A = 1
RECORD_NS = 2
RECORD_CNAME = 5
RECORD_AAAA = 28

# (provider, substrings matched against CNAME targets and nameservers)
PROVIDER_PATTERNS = (
    ("Cloudflare", ("cloudflare", "cdn.cloudflare.net")),
    ("Fastly", ("fastly",)),
    ("CloudFront", ("cloudfront.net",)),
    ("Akamai", ("akamai", "edgekey.net", "edgesuite.net")),
    ("Sucuri", ("sucuri",)),
    ("BunnyCDN", ("b-cdn.net", "bunny")),
    ("StackPath", ("stackpath", "hwcdn.net")),
    ("Kinsta", ("kinsta",)),
    ("WP Engine", ("wpengine", "wpenginepowered.com")),
    ("SiteGround", ("siteground", "sgvps.net")),
    ("Pantheon", ("pantheon",)),
    ("Flywheel", ("flywheel", "getflywheel.com")),
    ("AWS Route 53", ("awsdns",)),
)


def _strip_dot(name: str) -> str:
    return name[:-1] if name.endswith(".") else name


async def _query(client: httpx.AsyncClient, name: str, record_type: str) -> list[dict[str, Any]]:
    response = await client.get(
        settings.dns_over_https_url,
        params={"name": name, "type": record_type},
        headers={"Accept": "application/dns-json"},
    )
    response.raise_for_status()
    payload = response.json()
    if payload.get("Status", 0) != 0:
        return []
    return payload.get("Answer", []) or []


def detect_providers(names: list[str]) -> list[str]:
    detected: list[str] = []
    lowered = [n.lower() for n in names]
    for provider, patterns in PROVIDER_PATTERNS:
        if any(p in name for name in lowered for p in patterns) and provider not in detected:
            detected.append(provider)
    return detected


async def lookup(url: str, *, timeout_ms: int | None = None) -> DnsResult:
    """Resolve addresses, CNAME chain and nameservers for the URL's host."""
    host = (urlparse(url).hostname or url).lower()
    timeout_s = (timeout_ms if timeout_ms is not None else settings.request_timeout_ms) / 1000

    addresses: list[str] = []
    cnames: list[str] = []
    nameservers: list[str] = []

    async with httpx.AsyncClient(timeout=timeout_s) as client:
        for record_type in ("A", "AAAA"):
            for answer in await _query(client, host, record_type):
                data = _strip_dot(str(answer.get("data", "")))
                if answer.get("type") in (RECORD_A, RECORD_AAAA) and data not in addresses:
                    addresses.append(data)
                elif answer.get("type") == RECORD_CNAME and data not in cnames:
                    cnames.append(data)

        # NS records live on the zone apex; walk up until one answers.
        labels = host.split(".")
        for start in range(len(labels) - 1):
            zone = ".".join(labels[start:])
            answers = await _query(client, zone, "NS")
            nameservers = [
                _strip_dot(str(a.get("data", ""))) for a in answers if a.get("type") == RECORD_NS
            ]
            if nameservers:
                break

    return DnsResult(
        hostname=host,
        addresses=addresses,
        cnames=cnames,
        nameservers=nameservers,
        detected=detect_providers(cnames + nameservers),
    )
