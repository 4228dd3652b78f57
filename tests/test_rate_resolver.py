"""Tests for the RateResolver.

Most tests use a stub gateway that records requested paths; the last ones
run against the fake API server to cover the full request path.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from subdux_client.errors import ApiError, RateUnavailableError, TransportError
from subdux_client.services import RateCacheStore, RateResolver
from tests.helpers.fake_api import FakeApi


class StubGateway:
    def __init__(self, responses: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None) -> None:
        self.responses = responses or {}
        self.error = error
        self.paths: List[str] = []

    async def get(self, path: str) -> Any:
        self.paths.append(path)
        if self.error is not None:
            raise self.error
        if path not in self.responses:
            raise ApiError("exchange rate not found", status=404)
        return self.responses[path]


USD_OUTBOUND = [
    {"base_currency": "USD", "target_currency": "EUR", "rate": 0.92},
    {"base_currency": "USD", "target_currency": "GBP", "rate": 0.79},
]


@pytest.fixture
def cache(storage, clock) -> RateCacheStore:
    return RateCacheStore(storage, clock=clock)


@pytest.mark.asyncio
async def test_empty_cache_fetches_once_and_inverts(cache) -> None:
    gateway = StubGateway({"/exchange-rates?base=USD": USD_OUTBOUND})
    resolver = RateResolver(cache, gateway)

    rates = await resolver.resolve_many(["EUR", "GBP"], "USD")
    assert rates == {"EUR": pytest.approx(1 / 0.92), "GBP": pytest.approx(1 / 0.79)}
    assert gateway.paths == ["/exchange-rates?base=USD"]
    assert cache.get("EUR", "USD") == pytest.approx(1 / 0.92)
    assert cache.get("GBP", "USD") == pytest.approx(1 / 0.79)

    again = await resolver.resolve_many(["EUR", "GBP"], "USD")
    assert again == rates
    assert len(gateway.paths) == 1


@pytest.mark.asyncio
async def test_sources_are_normalized_and_deduplicated(cache) -> None:
    gateway = StubGateway({"/exchange-rates?base=USD": USD_OUTBOUND})
    resolver = RateResolver(cache, gateway)
    rates = await resolver.resolve_many(["eur", "EUR", " Eur ", "usd", "USD"], "usd")
    assert list(rates) == ["EUR"]
    assert gateway.paths == ["/exchange-rates?base=USD"]


@pytest.mark.asyncio
async def test_only_target_sources_make_no_calls(cache) -> None:
    gateway = StubGateway()
    resolver = RateResolver(cache, gateway)
    assert await resolver.resolve_many(["USD", "usd"], "USD") == {}
    assert await resolver.resolve_many([], "USD") == {}
    assert gateway.paths == []


@pytest.mark.asyncio
async def test_partial_hits_only_fetch_for_misses(cache) -> None:
    cache.set("EUR", "USD", 1.09)
    gateway = StubGateway({"/exchange-rates?base=USD": USD_OUTBOUND})
    resolver = RateResolver(cache, gateway)
    rates = await resolver.resolve_many(["EUR", "GBP"], "USD")
    # the cached value wins over the fetched one
    assert rates["EUR"] == 1.09
    assert rates["GBP"] == pytest.approx(1 / 0.79)
    assert len(gateway.paths) == 1


@pytest.mark.asyncio
async def test_zero_or_unknown_rates_are_left_unresolved(cache) -> None:
    outbound = USD_OUTBOUND + [{"target_currency": "XAU", "rate": 0}]
    gateway = StubGateway({"/exchange-rates?base=USD": outbound})
    resolver = RateResolver(cache, gateway)
    rates = await resolver.resolve_many(["EUR", "XAU", "ZZZ"], "USD")
    assert set(rates) == {"EUR"}
    assert cache.get("XAU", "USD") is None
    assert cache.get("ZZZ", "USD") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_rate", [float("nan"), float("inf"), 5e-324])
async def test_non_finite_rates_do_not_spoil_the_batch(cache, bad_rate) -> None:
    # 5e-324 is positive but its inverse overflows to infinity
    outbound = USD_OUTBOUND + [{"target_currency": "XAU", "rate": bad_rate}]
    gateway = StubGateway({"/exchange-rates?base=USD": outbound})
    rates = await RateResolver(cache, gateway).resolve_many(["EUR", "XAU"], "USD")
    assert rates == {"EUR": pytest.approx(1 / 0.92)}
    assert cache.get("EUR", "USD") == pytest.approx(1 / 0.92)
    assert cache.get("XAU", "USD") is None


@pytest.mark.asyncio
async def test_malformed_items_are_skipped(cache) -> None:
    outbound = [{"rate": 2.0}, {"target_currency": "EUR", "rate": "abc"}, "junk", {"target_currency": "gbp", "rate": "0.8"}]
    gateway = StubGateway({"/exchange-rates?base=USD": outbound})
    rates = await RateResolver(cache, gateway).resolve_many(["EUR", "GBP"], "USD")
    assert rates == {"GBP": pytest.approx(1.25)}


@pytest.mark.asyncio
async def test_network_failure_returns_cache_hits(cache) -> None:
    cache.set("EUR", "USD", 1.09)
    gateway = StubGateway(error=TransportError("Network error"))
    rates = await RateResolver(cache, gateway).resolve_many(["EUR", "GBP"], "USD")
    assert rates == {"EUR": 1.09}


@pytest.mark.asyncio
async def test_unexpected_payload_shape_resolves_nothing(cache) -> None:
    gateway = StubGateway({"/exchange-rates?base=USD": {"error": "oops"}})
    assert await RateResolver(cache, gateway).resolve_many(["EUR"], "USD") == {}


@pytest.mark.asyncio
async def test_resolve_one_identity_skips_cache_and_network(clock) -> None:
    class ExplodingStorage:
        def get(self, key):  # pragma: no cover - must not be called
            raise AssertionError("storage read")

        def set(self, key, value):  # pragma: no cover - must not be called
            raise AssertionError("storage write")

    gateway = StubGateway()
    resolver = RateResolver(RateCacheStore(ExplodingStorage(), clock=clock), gateway)
    assert await resolver.resolve_one("USD", "usd") == 1
    assert gateway.paths == []


@pytest.mark.asyncio
async def test_resolve_one_fetches_direct_pair_and_caches(cache) -> None:
    gateway = StubGateway({"/exchange-rates/EUR/USD": {"base_currency": "EUR", "target_currency": "USD", "rate": 1.1}})
    resolver = RateResolver(cache, gateway)
    assert await resolver.resolve_one("eur", "usd") == 1.1
    assert await resolver.resolve_one("EUR", "USD") == 1.1
    assert gateway.paths == ["/exchange-rates/EUR/USD"]
    assert cache.get("EUR", "USD") == 1.1


@pytest.mark.asyncio
async def test_resolve_one_propagates_api_errors(cache) -> None:
    resolver = RateResolver(cache, StubGateway())
    with pytest.raises(ApiError):
        await resolver.resolve_one("EUR", "CHF")


@pytest.mark.asyncio
async def test_resolve_one_rejects_unusable_rate(cache) -> None:
    gateway = StubGateway({"/exchange-rates/EUR/USD": {"rate": 0}})
    with pytest.raises(RateUnavailableError):
        await RateResolver(cache, gateway).resolve_one("EUR", "USD")
    assert cache.get("EUR", "USD") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_rate", [float("nan"), float("inf"), -1.5])
async def test_resolve_one_rejects_non_finite_rate(cache, bad_rate) -> None:
    gateway = StubGateway({"/exchange-rates/EUR/USD": {"rate": bad_rate}})
    with pytest.raises(RateUnavailableError):
        await RateResolver(cache, gateway).resolve_one("EUR", "USD")
    assert cache.get("EUR", "USD") is None


@pytest.mark.asyncio
async def test_convert_and_convert_many(cache) -> None:
    gateway = StubGateway(
        {
            "/exchange-rates/EUR/USD": {"rate": 1.1},
            "/exchange-rates?base=USD": USD_OUTBOUND,
        }
    )
    resolver = RateResolver(cache, gateway)
    assert await resolver.convert(10, "EUR", "USD") == pytest.approx(11.0)

    total = await resolver.convert_many({"USD": 5.0, "EUR": 10.0, "GBP": 7.9, "XYZ": 3.0}, "usd")
    assert total.currency == "USD"
    # EUR comes from the cache populated by convert()
    assert total.total == pytest.approx(5.0 + 11.0 + 10.0)
    assert total.unresolved == ["XYZ"]


@pytest.mark.asyncio
async def test_resolve_many_against_fake_api(gateway, credentials, user, fake_api: FakeApi, storage, clock) -> None:
    credentials.set_session("access-0", user, "refresh-0")
    resolver = RateResolver(RateCacheStore(storage, clock=clock), gateway)
    rates = await resolver.resolve_many(["EUR", "GBP", "JPY"], "USD")
    assert rates["JPY"] == pytest.approx(1 / 150.0)
    assert fake_api.count("GET", "/api/exchange-rates?base=USD") == 1
    await resolver.resolve_many(["EUR", "GBP", "JPY"], "USD")
    assert fake_api.count("GET", "/api/exchange-rates") == 1


@pytest.mark.asyncio
async def test_resolution_survives_an_expired_session(gateway, credentials, user, fake_api: FakeApi, storage, clock) -> None:
    credentials.set_session("access-expired", user, "refresh-0")
    resolver = RateResolver(RateCacheStore(storage, clock=clock), gateway)
    assert await resolver.resolve_one("EUR", "USD") == 1.1
    assert fake_api.refresh_calls == 1


@pytest.mark.asyncio
async def test_undecodable_rates_reply_returns_cache_hits(gateway, credentials, user, fake_api: FakeApi, storage, clock) -> None:
    credentials.set_session("access-0", user, "refresh-0")
    cache = RateCacheStore(storage, clock=clock)
    cache.set("GBP", "USD", 1.27)
    fake_api.garbled_rates = True
    rates = await RateResolver(cache, gateway).resolve_many(["GBP", "EUR"], "USD")
    assert rates == {"GBP": 1.27}
    assert credentials.is_authenticated() is True
