from __future__ import annotations

import time
from typing import Callable, Dict, Iterable, Tuple

import httpx
import structlog

from .errors import DompetError, UpstreamError

logger = structlog.get_logger(__name__)

USER_AGENT = {"User-Agent": "dompet/1.0"}

PriceMap = Dict[str, Dict[str, float]]


class PriceCache:
	"""In-memory TTL cache keyed by the sorted coin id list. Single process only."""

	def __init__(
		self,
		ttl_seconds: float = 60.0,
		max_entries: int = 256,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self.ttl = ttl_seconds
		self.max_entries = max_entries
		self._clock = clock
		self._entries: Dict[str, Tuple[PriceMap, float]] = {}

	@staticmethod
	def key(coin_ids: Iterable[str]) -> str:
		return ",".join(sorted(coin_ids))

	def get(self, key: str) -> PriceMap | None:
		entry = self._entries.get(key)
		if entry is None:
			return None
		data, stored_at = entry
		if self._clock() - stored_at < self.ttl:
			return data
		del self._entries[key]
		return None

	def set(self, key: str, data: PriceMap) -> None:
		"""Store ``data``, dropping expired entries and then the oldest ones past ``max_entries``."""
		self.purge_expired()
		self._entries.pop(key, None)
		while len(self._entries) >= self.max_entries:
			del self._entries[next(iter(self._entries))]
		self._entries[key] = (data, self._clock())

	def purge_expired(self) -> int:
		now = self._clock()
		expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl]
		for k in expired:
			del self._entries[k]
		return len(expired)

	def __len__(self) -> int:
		return len(self._entries)


async def fetch_coingecko_prices(
	coin_ids: list[str],
	*,
	base_url: str = "https://api.coingecko.com/api/v3",
	timeout: float = 10.0,
	transport: httpx.AsyncBaseTransport | None = None,
) -> PriceMap:
	"""One batched ``simple/price`` request, quoted in IDR."""
	async with httpx.AsyncClient(headers=USER_AGENT, timeout=timeout, transport=transport) as client:
		try:
			resp = await client.get(
				f"{base_url}/simple/price",
				params={"ids": ",".join(coin_ids), "vs_currencies": "idr"},
			)
		except httpx.HTTPError as exc:
			logger.error("coingecko_request_failed", error=str(exc), coin_ids=coin_ids)
			raise DompetError("Internal server error while fetching prices", status_code=500) from exc
	if resp.status_code >= 400:
		logger.warning("coingecko_bad_status", status=resp.status_code, coin_ids=coin_ids)
		raise UpstreamError("Failed to fetch prices from CoinGecko", status_code=resp.status_code)
	return resp.json()


async def get_prices(
	coin_ids: list[str],
	cache: PriceCache,
	*,
	base_url: str = "https://api.coingecko.com/api/v3",
	timeout: float = 10.0,
	transport: httpx.AsyncBaseTransport | None = None,
) -> PriceMap:
	if not coin_ids:
		raise DompetError("Coin ID kosong")
	key = cache.key(coin_ids)
	cached = cache.get(key)
	if cached is not None:
		logger.debug("price_cache_hit", key=key)
		return cached
	logger.debug("price_cache_miss", key=key)
	data = await fetch_coingecko_prices(coin_ids, base_url=base_url, timeout=timeout, transport=transport)
	cache.set(key, data)
	return data


async def get_idr_prices(coin_ids: list[str], cache: PriceCache, **kwargs) -> Dict[str, float]:
	"""Flat ``coin_id -> price`` map; empty when prices cannot be fetched."""
	if not coin_ids:
		return {}
	try:
		data = await get_prices(coin_ids, cache, **kwargs)
	except DompetError as exc:
		logger.warning("price_lookup_failed", error=exc.message)
		return {}
	return {coin: float(quote["idr"]) for coin, quote in data.items() if "idr" in quote}
