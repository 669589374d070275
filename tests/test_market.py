import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from dompet import market
from dompet.errors import DompetError, UpstreamError
from dompet.main import create_app
from dompet.market import PriceCache, fetch_coingecko_prices, get_prices


class FakeClock:
	def __init__(self):
		self.now = 1_000.0

	def __call__(self):
		return self.now


class TestPriceCache:
	"""Tests for the in-memory TTL price cache."""

	def test_key_is_order_independent(self):
		assert PriceCache.key(["solana", "bitcoin"]) == PriceCache.key(["bitcoin", "solana"]) == "bitcoin,solana"

	def test_fresh_entry_served(self):
		clock = FakeClock()
		cache = PriceCache(60, clock=clock)
		cache.set("bitcoin", {"bitcoin": {"idr": 1}})
		clock.now += 59
		assert cache.get("bitcoin") == {"bitcoin": {"idr": 1}}

	def test_expired_entry_evicted(self):
		clock = FakeClock()
		cache = PriceCache(60, clock=clock)
		cache.set("bitcoin", {"bitcoin": {"idr": 1}})
		clock.now += 60
		assert cache.get("bitcoin") is None
		assert len(cache) == 0

	def test_purge_expired(self):
		clock = FakeClock()
		cache = PriceCache(60, clock=clock)
		cache.set("a", {})
		clock.now += 30
		cache.set("b", {})
		clock.now += 31
		assert cache.purge_expired() == 1
		assert cache.get("b") == {}

	def test_set_drops_expired_entries(self):
		clock = FakeClock()
		cache = PriceCache(60, clock=clock)
		cache.set("a", {})
		cache.set("b", {})
		clock.now += 61
		cache.set("c", {})
		assert len(cache) == 1

	def test_oldest_entry_evicted_at_capacity(self):
		cache = PriceCache(60, max_entries=2, clock=FakeClock())
		cache.set("a", {"a": {"idr": 1}})
		cache.set("b", {"b": {"idr": 2}})
		cache.set("a", {"a": {"idr": 3}})
		cache.set("c", {"c": {"idr": 4}})
		assert len(cache) == 2
		assert cache.get("b") is None
		assert cache.get("a") == {"a": {"idr": 3}}
		assert cache.get("c") == {"c": {"idr": 4}}


def _transport(handler):
	return httpx.MockTransport(handler)


class TestFetch:
	def test_batches_ids_into_one_request(self):
		seen = []

		def handler(request: httpx.Request):
			seen.append(request)
			return httpx.Response(200, json={"bitcoin": {"idr": 1_000}, "ethereum": {"idr": 50}})

		data = asyncio.run(fetch_coingecko_prices(["bitcoin", "ethereum"], transport=_transport(handler)))
		assert data["ethereum"] == {"idr": 50}
		assert len(seen) == 1
		assert seen[0].url.path.endswith("/simple/price")
		assert seen[0].url.params["ids"] == "bitcoin,ethereum"
		assert seen[0].url.params["vs_currencies"] == "idr"

	def test_upstream_status_propagated(self):
		transport = _transport(lambda request: httpx.Response(429, json={}))
		with pytest.raises(UpstreamError) as info:
			asyncio.run(fetch_coingecko_prices(["bitcoin"], transport=transport))
		assert info.value.status_code == 429

	def test_transport_error_is_500(self):
		def handler(request):
			raise httpx.ConnectError("boom", request=request)

		with pytest.raises(DompetError) as info:
			asyncio.run(fetch_coingecko_prices(["bitcoin"], transport=_transport(handler)))
		assert info.value.status_code == 500

	def test_get_prices_uses_cache(self):
		hits = []

		def handler(request):
			hits.append(request)
			return httpx.Response(200, json={"bitcoin": {"idr": 7}})

		cache = PriceCache(60)
		transport = _transport(handler)
		asyncio.run(get_prices(["bitcoin"], cache, transport=transport))
		asyncio.run(get_prices(["bitcoin"], cache, transport=transport))
		assert len(hits) == 1

	def test_empty_ids(self):
		with pytest.raises(DompetError) as info:
			asyncio.run(get_prices([], PriceCache(60)))
		assert info.value.message == "Coin ID kosong"


class TestPriceEndpoint:
	def test_empty_ids(self, client):
		resp = client.post("/api/price", json={"coinIds": []})
		assert resp.status_code == 400
		assert resp.json() == {"error": "Coin ID kosong"}

	def test_cached_between_requests(self, client, monkeypatch):
		calls = []

		async def fake_fetch(coin_ids, **kwargs):
			calls.append(coin_ids)
			return {c: {"idr": 1.5} for c in coin_ids}

		monkeypatch.setattr(market, "fetch_coingecko_prices", fake_fetch)
		first = client.post("/api/price", json={"coinIds": ["ethereum", "bitcoin"]})
		second = client.post("/api/price", json={"coinIds": ["bitcoin", "ethereum"]})
		assert first.json() == second.json() == {"ethereum": {"idr": 1.5}, "bitcoin": {"idr": 1.5}}
		assert len(calls) == 1

	def test_upstream_failure(self, client, monkeypatch):
		async def failing(coin_ids, **kwargs):
			raise UpstreamError("Failed to fetch prices from CoinGecko", status_code=503)

		monkeypatch.setattr(market, "fetch_coingecko_prices", failing)
		resp = client.post("/api/price", json={"coinIds": ["bitcoin"]})
		assert resp.status_code == 503
		assert resp.json()["error"] == "Failed to fetch prices from CoinGecko"

	def test_cache_size_is_bounded(self, make_settings, monkeypatch):
		async def fake_fetch(coin_ids, **kwargs):
			return {c: {"idr": 1} for c in coin_ids}

		monkeypatch.setattr(market, "fetch_coingecko_prices", fake_fetch)
		with TestClient(create_app(make_settings(price_cache_max_entries=3))) as c:
			for i in range(10):
				assert c.post("/api/price", json={"coinIds": [f"coin-{i}"]}).status_code == 200
			cache = c.app.state.price_cache
			assert len(cache) == 3
			assert cache.get("coin-9") == {"coin-9": {"idr": 1}}
			assert cache.get("coin-0") is None
