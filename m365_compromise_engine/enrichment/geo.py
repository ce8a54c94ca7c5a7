"""
Async IP geolocation client with caching, jittered rate limiting and retry.

Unique IPs are split into disjoint batches, one per worker, so no two
workers ever resolve the same address. All workers write into one shared
GeoCache. The caller waits for every worker to finish; there is no
cancellation path, so a worker stuck on a slow endpoint holds up the
whole enrichment step until its request timeout fires.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import random
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from ..cache.store import GeoCache
from ..collectors.normalizer import SignInRecord
from ..config import GeoConfig

logger = logging.getLogger("m365_compromise_engine.enrichment.geo")

LOOKUP_FIELDS = "status,message,country,countryCode,regionName,city,isp,query"

STATUS_RESOLVED = "success"
STATUS_UNKNOWN = "unknown"
STATUS_PRIVATE = "private"


class GeoLookupError(Exception):
    """Raised when a lookup fails in a way worth retrying."""


@dataclass(frozen=True)
class GeoResult:
    ip: str
    country: str = ""
    country_code: str = ""
    region: str = ""
    city: str = ""
    isp: str = ""
    status: str = STATUS_RESOLVED

    @classmethod
    def unknown(cls, ip: str) -> "GeoResult":
        return cls(ip=ip, country="Unknown", status=STATUS_UNKNOWN)

    @classmethod
    def private(cls, ip: str) -> "GeoResult":
        return cls(ip=ip, country="Private", status=STATUS_PRIVATE)

    @property
    def resolved(self) -> bool:
        return self.status == STATUS_RESOLVED


def classify_address(ip: str) -> Optional[GeoResult]:
    """Return a local result for addresses that must not be looked up."""
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return GeoResult.unknown(ip)
    if not addr.is_global:
        return GeoResult.private(ip)
    return None


class GeoLocator:
    """
    Geolocation lookups against an ip-api.com compatible JSON endpoint.
    Features:
      - Worker pool of min(max_workers, max(2, cpu_count)) coroutines
      - 100-500ms jittered delay before every request
      - Exponential backoff retry; exhausted retries cache an Unknown result
      - Shared TTL cache consulted before any request
    """

    def __init__(
        self,
        config: Optional[GeoConfig] = None,
        cache: Optional[GeoCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or GeoConfig()
        self.cache = cache if cache is not None else GeoCache(self.config.cache_ttl_seconds)
        self._transport = transport
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._client: Optional[httpx.AsyncClient] = None
        self._request_count = 0
        self._failure_count = 0

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout_seconds),
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def lookup_many(self, ips: Iterable[str]) -> dict[str, GeoResult]:
        """Resolve every distinct IP, using the cache where possible."""
        results: dict[str, GeoResult] = {}
        pending: list[str] = []

        for ip in ips:
            ip = (ip or "").strip()
            if not ip or ip in results or ip in pending:
                continue
            cached = self.cache.get(ip)
            if cached is not None:
                results[ip] = cached
                continue
            local = classify_address(ip)
            if local is not None:
                self.cache.put(ip, local)
                results[ip] = local
                continue
            pending.append(ip)

        if pending:
            workers = min(self.config.worker_count, len(pending))
            batches = [pending[i::workers] for i in range(workers)]
            logger.info(f"Resolving {len(pending)} IPs with {workers} workers")
            await asyncio.gather(*(self._worker(batch) for batch in batches))

        for ip in pending:
            results[ip] = self.cache.get(ip) or GeoResult.unknown(ip)
        return results

    async def _worker(self, batch: list[str]):
        for ip in batch:
            self.cache.put(ip, await self._lookup_with_retry(ip))

    async def _lookup_with_retry(self, ip: str) -> GeoResult:
        delay = self.config.backoff_base_seconds
        attempts = max(1, self.config.max_attempts)

        for attempt in range(1, attempts + 1):
            await self._sleep(self._rng.uniform(
                self.config.min_jitter_seconds, self.config.max_jitter_seconds
            ))
            try:
                return await self._fetch(ip)
            except (httpx.HTTPError, GeoLookupError, ValueError) as e:
                logger.warning(f"Geo lookup for {ip} failed (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    await self._sleep(delay)
                    delay *= 2

        self._failure_count += 1
        logger.warning(f"Geo lookup for {ip} exhausted retries; caching as Unknown")
        return GeoResult.unknown(ip)

    async def _fetch(self, ip: str) -> GeoResult:
        if not self._client:
            raise RuntimeError("GeoLocator not initialized. Use 'async with' context.")

        url = f"{self.config.base_url.rstrip('/')}/{ip}"
        response = await self._client.get(url, params={"fields": LOOKUP_FIELDS})
        self._request_count += 1

        if response.status_code == 429 or response.status_code >= 500:
            raise GeoLookupError(f"HTTP {response.status_code} from {url}")
        response.raise_for_status()

        data = response.json()
        if data.get("status") != "success":
            message = str(data.get("message", "")).lower()
            if "private" in message or "reserved" in message:
                return GeoResult.private(ip)
            logger.debug(f"Lookup for {ip} returned {data.get('status')}: {message}")
            return GeoResult.unknown(ip)

        return GeoResult(
            ip=ip,
            country=data.get("country") or "",
            country_code=data.get("countryCode") or "",
            region=data.get("regionName") or "",
            city=data.get("city") or "",
            isp=data.get("isp") or "",
        )

    def get_stats(self) -> dict:
        return {
            "total_requests": self._request_count,
            "failed_lookups": self._failure_count,
            "cached_entries": len(self.cache),
        }


async def enrich_sign_ins(
    records: list[SignInRecord],
    locator: GeoLocator,
) -> list[SignInRecord]:
    """
    Fill blank Country/City/State on sign-in records from geolocation.
    Values already present in the export are never overwritten.
    """
    ips = [r.ip_address for r in records if r.ip_address and not r.country]
    if not ips:
        return list(records)

    geo = await locator.lookup_many(ips)
    enriched = []
    for record in records:
        result = geo.get(record.ip_address) if not record.country else None
        if result is None:
            enriched.append(record)
            continue
        enriched.append(replace(
            record,
            country=result.country,
            city=record.city or result.city,
            state=record.state or result.region,
        ))
    return enriched
