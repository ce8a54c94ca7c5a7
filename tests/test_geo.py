"""
Tests for the geolocation client and its TTL cache. HTTP is served by
httpx.MockTransport and all sleeps are no-ops.
"""

import asyncio

import httpx

from m365_compromise_engine.cache import GeoCache
from m365_compromise_engine.collectors.normalizer import SignInRecord
from m365_compromise_engine.config import GeoConfig
from m365_compromise_engine.enrichment import GeoLocator, GeoResult, enrich_sign_ins
from m365_compromise_engine.enrichment.geo import classify_address


async def _no_sleep(_seconds):
    return None


def _geo_config(**overrides):
    return GeoConfig(max_workers=4, **overrides)


def _ok(country="Nigeria", city="Lagos"):
    return httpx.Response(200, json={
        "status": "success", "country": country, "countryCode": "NG",
        "regionName": "Lagos", "city": city, "isp": "Example ISP",
    })


def _run_lookup(handler, ips, cache=None, config=None):
    async def run():
        locator = GeoLocator(
            config or _geo_config(),
            cache=cache,
            transport=httpx.MockTransport(handler),
            sleep=_no_sleep,
        )
        async with locator:
            results = await locator.lookup_many(ips)
        return results, locator

    return asyncio.run(run())


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestGeoCache:

    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = GeoCache(ttl_seconds=60, clock=clock)
        cache.put("198.51.100.9", "value")
        clock.now += 59
        assert cache.get("198.51.100.9") == "value"
        clock.now += 2
        assert cache.get("198.51.100.9") is None
        assert len(cache) == 0

    def test_clear_expired(self):
        clock = FakeClock()
        cache = GeoCache(ttl_seconds=10, clock=clock)
        cache.put("a", 1)
        clock.now += 20
        cache.put("b", 2)
        assert cache.clear_expired() == 1
        assert "b" in cache
        assert "a" not in cache


class TestClassifyAddress:

    def test_private_and_invalid_addresses(self):
        assert classify_address("10.0.0.4").country == "Private"
        assert classify_address("not-an-ip").country == "Unknown"
        assert classify_address("8.8.8.8") is None


class TestGeoLocator:

    def test_each_distinct_ip_requested_once(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return _ok()

        ips = ["8.8.8.8", "1.1.1.1", "8.8.8.8", "9.9.9.9", " 1.1.1.1 "]
        results, locator = _run_lookup(handler, ips)
        assert sorted(calls) == ["/json/1.1.1.1", "/json/8.8.8.8", "/json/9.9.9.9"]
        assert set(results) == {"8.8.8.8", "1.1.1.1", "9.9.9.9"}
        assert results["8.8.8.8"].country == "Nigeria"
        assert locator.get_stats()["total_requests"] == 3

    def test_cached_ips_are_not_requested(self):
        cache = GeoCache()
        cache.put("8.8.8.8", GeoResult(ip="8.8.8.8", country="United States"))

        def handler(request):
            raise AssertionError("unexpected request")

        results, _ = _run_lookup(handler, ["8.8.8.8", "192.168.1.5"], cache=cache)
        assert results["8.8.8.8"].country == "United States"
        assert results["192.168.1.5"].country == "Private"

    def test_rate_limit_is_retried(self):
        responses = [httpx.Response(429), httpx.Response(503), _ok()]

        def handler(request):
            return responses.pop(0)

        results, locator = _run_lookup(handler, ["8.8.8.8"])
        assert results["8.8.8.8"].country == "Nigeria"
        assert locator.get_stats()["failed_lookups"] == 0

    def test_exhausted_retries_cache_unknown(self):
        cache = GeoCache()

        def handler(request):
            return httpx.Response(500)

        results, locator = _run_lookup(handler, ["8.8.8.8"], cache=cache)
        assert results["8.8.8.8"].country == "Unknown"
        assert cache.get("8.8.8.8").country == "Unknown"
        assert locator.get_stats()["failed_lookups"] == 1

    def test_reserved_range_answer_is_private(self):
        def handler(request):
            return httpx.Response(200, json={"status": "fail", "message": "reserved range"})

        results, _ = _run_lookup(handler, ["8.8.4.4"])
        assert results["8.8.4.4"].country == "Private"

    def test_transport_errors_fall_back_to_unknown(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        results, _ = _run_lookup(handler, ["8.8.8.8"], config=_geo_config(max_attempts=2))
        assert results["8.8.8.8"].country == "Unknown"


class TestEnrichSignIns:

    def test_only_blank_countries_are_filled(self):
        def handler(request):
            return _ok(country="Nigeria", city="Lagos")

        records = [
            SignInRecord(user_principal_name="alice@contoso.com", ip_address="8.8.8.8"),
            SignInRecord(user_principal_name="bob@contoso.com", ip_address="8.8.8.8",
                         country="United States", city="Seattle"),
        ]

        async def run():
            locator = GeoLocator(_geo_config(), transport=httpx.MockTransport(handler), sleep=_no_sleep)
            async with locator:
                return await enrich_sign_ins(records, locator)

        enriched = asyncio.run(run())
        assert enriched[0].country == "Nigeria"
        assert enriched[0].city == "Lagos"
        assert enriched[1].country == "United States"
        assert enriched[1].city == "Seattle"
