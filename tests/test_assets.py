from dompet import market
from dompet.errors import UpstreamError

from conftest import signup


def _asset(client, **fields):
	payload = {"name": "BBCA", "amount": 10, "buyPrice": 9_000, **fields}
	resp = client.post("/api/assets", json=payload)
	assert resp.status_code == 200, resp.text
	return resp.json()


class TestAssets:
	def test_defaults(self, auth_client):
		asset = _asset(auth_client)
		assert asset["type"] == "stock"
		assert asset["category"] == "stock"
		assert asset["color"] == "bg-gray-500"
		assert asset["coinId"] is None
		assert asset["positionX"] is None

	def test_category_defaults_to_type(self, auth_client):
		asset = _asset(auth_client, name="Bitcoin", type="crypto", coinId="bitcoin")
		assert asset["category"] == "crypto"
		assert asset["coinId"] == "bitcoin"

	def test_list_newest_first(self, auth_client):
		_asset(auth_client, name="Lama")
		_asset(auth_client, name="Baru")
		assert [a["name"] for a in auth_client.get("/api/assets").json()] == ["Baru", "Lama"]

	def test_update_position_and_fields(self, auth_client):
		asset = _asset(auth_client)
		resp = auth_client.put(f"/api/assets/{asset['id']}", json={"positionX": 120.5, "positionY": 40, "amount": 12})
		assert resp.status_code == 200
		body = resp.json()
		assert (body["positionX"], body["positionY"]) == (120.5, 40)
		assert body["amount"] == 12
		assert body["name"] == "BBCA"

		resp = auth_client.put(f"/api/assets/{asset['id']}", json={"positionX": None, "positionY": None})
		assert resp.json()["positionX"] is None

	def test_null_amount_or_price_rejected(self, auth_client):
		asset = _asset(auth_client)
		for payload in ({"amount": None}, {"buyPrice": None}):
			resp = auth_client.put(f"/api/assets/{asset['id']}", json=payload)
			assert resp.status_code == 400
			assert resp.json()["error"] == "Jumlah dan harga beli wajib diisi"
		assert auth_client.get("/api/assets").json()[0]["amount"] == 10

	def test_non_finite_numbers_rejected(self, auth_client):
		resp = auth_client.post("/api/assets", json={"name": "BBCA", "amount": "inf", "buyPrice": 9_000})
		assert resp.status_code == 400
		asset = _asset(auth_client)
		resp = auth_client.put(f"/api/assets/{asset['id']}", json={"buyPrice": "nan"})
		assert resp.status_code == 400
		assert auth_client.get("/api/assets").json()[0]["buyPrice"] == 9_000

	def test_delete(self, auth_client):
		asset = _asset(auth_client)
		assert auth_client.delete(f"/api/assets/{asset['id']}").json() == {"success": True}
		assert auth_client.get("/api/assets").json() == []
		assert auth_client.delete(f"/api/assets/{asset['id']}").status_code == 404

	def test_other_users_asset(self, client):
		signup(client, "a@gmail.com")
		asset = _asset(client)
		signup(client, "b@gmail.com")
		assert client.put(f"/api/assets/{asset['id']}", json={"amount": 1}).status_code == 404


class TestPortfolio:
	def test_values_coins_at_live_price(self, auth_client, monkeypatch):
		calls = []

		async def fake_fetch(coin_ids, **kwargs):
			calls.append(coin_ids)
			return {"bitcoin": {"idr": 1_000_000_000}}

		monkeypatch.setattr(market, "fetch_coingecko_prices", fake_fetch)
		_asset(auth_client, name="Bitcoin", type="crypto", coinId="bitcoin", amount=0.5, buyPrice=800_000_000)
		_asset(auth_client, name="BBCA", amount=100, buyPrice=9_000)

		data = auth_client.get("/api/assets/portfolio").json()
		assert calls == [["bitcoin"]]
		by_name = {a["name"]: a for a in data["assets"]}
		assert by_name["Bitcoin"]["currentPrice"] == 1_000_000_000
		assert by_name["Bitcoin"]["profit"] == 100_000_000
		assert by_name["BBCA"]["currentPrice"] == 9_000
		assert data["totalValue"] == 500_000_000 + 900_000
		assert data["allocation"][0]["label"] == "crypto"

	def test_price_outage_falls_back_to_buy_price(self, auth_client, monkeypatch):
		async def broken_fetch(coin_ids, **kwargs):
			raise UpstreamError("Failed to fetch prices from CoinGecko", status_code=503)

		monkeypatch.setattr(market, "fetch_coingecko_prices", broken_fetch)
		_asset(auth_client, name="Bitcoin", type="crypto", coinId="bitcoin", amount=1, buyPrice=10)

		data = auth_client.get("/api/assets/portfolio").json()
		assert data["assets"][0]["currentPrice"] == 10
		assert data["totalProfit"] == 0
