import pytest

from conftest import balance_of, create_account, signup


def _income(client, account_id, amount=5_000_000, **extra):
	payload = {"title": "Gaji", "amount": amount, "date": "2024-05-25", "accountId": account_id, **extra}
	resp = client.post("/api/income", json=payload)
	assert resp.status_code == 200, resp.text
	return resp.json()


class TestIncome:
	"""Incomes credit their account; updates and deletes reverse the credit."""

	def test_create_increments_balance(self, auth_client):
		account = create_account(auth_client, balance=100)
		income = _income(auth_client, account["id"], amount=900)
		assert income["accountId"] == account["id"]
		assert income["date"] == "2024-05-25"
		assert balance_of(auth_client, account["id"]) == 1_000

	def test_invalid_input(self, auth_client):
		resp = auth_client.post("/api/income", json={"title": "Gaji", "amount": 100})
		assert resp.status_code == 400
		assert resp.json()["error"] == "Invalid input"

	@pytest.mark.parametrize("amount", ["NaN", "Infinity", "\"inf\""])
	def test_non_finite_amount_rejected(self, auth_client, amount):
		account = create_account(auth_client, balance=100)
		body = f'{{"title": "Gaji", "amount": {amount}, "date": "2024-05-25", "accountId": {account["id"]}}}'
		resp = auth_client.post("/api/income", content=body, headers={"Content-Type": "application/json"})
		assert resp.status_code == 400
		assert resp.json()["error"] == "Input tidak valid"
		assert balance_of(auth_client, account["id"]) == 100
		assert auth_client.get("/api/income").json() == []

	def test_update_rolls_back_and_reapplies(self, auth_client):
		bca = create_account(auth_client, "BCA", balance=0)
		bni = create_account(auth_client, "BNI", balance=0)
		income = _income(auth_client, bca["id"], amount=1_000)
		resp = auth_client.put(f"/api/income/{income['id']}", json={
			"title": "Gaji + bonus", "amount": 1_500, "date": "2024-05-26", "accountId": bni["id"],
		})
		assert resp.status_code == 200
		assert resp.json()["title"] == "Gaji + bonus"
		assert resp.json()["date"] == "2024-05-26"
		assert balance_of(auth_client, bca["id"]) == 0
		assert balance_of(auth_client, bni["id"]) == 1_500

	def test_delete_decrements(self, auth_client):
		account = create_account(auth_client, balance=0)
		income = _income(auth_client, account["id"], amount=700)
		assert auth_client.delete(f"/api/income/{income['id']}").json() == {"success": True}
		assert balance_of(auth_client, account["id"]) == 0

	def test_list_includes_account(self, auth_client):
		account = create_account(auth_client, "BCA")
		_income(auth_client, account["id"], title="Lama", date="2024-04-01")
		_income(auth_client, account["id"], title="Baru", date="2024-05-01")
		items = auth_client.get("/api/income").json()
		assert [i["title"] for i in items] == ["Baru", "Lama"]
		assert items[0]["account"]["name"] == "BCA"

	def test_other_users_income_not_found(self, client):
		signup(client, "a@gmail.com")
		account = create_account(client)
		income = _income(client, account["id"])
		signup(client, "b@gmail.com")
		assert client.delete(f"/api/income/{income['id']}").status_code == 404
		resp = client.put(f"/api/income/{income['id']}", json={"title": "X", "amount": 1, "accountId": account["id"]})
		assert resp.status_code == 404
		assert resp.json()["error"] == "Not found"
