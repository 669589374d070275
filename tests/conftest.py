from __future__ import annotations

from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

from dompet.config import Settings
from dompet.main import create_app

PASSWORD = "rahasia123"


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
	def factory(**overrides) -> Settings:
		values = {
			"database_url": f"sqlite+aiosqlite:///{tmp_path / 'dompet-test.db'}",
			"upload_dir": tmp_path / "uploads",
			"bcrypt_rounds": 4,
			"log_json": False,
			"log_level": "WARNING",
		}
		values.update(overrides)
		return Settings(_env_file=None, **values)

	return factory


@pytest.fixture
def settings(make_settings) -> Settings:
	return make_settings()


@pytest.fixture
def client(settings) -> Iterator[TestClient]:
	with TestClient(create_app(settings)) as c:
		yield c


def signup(client: TestClient, email: str = "budi@gmail.com", name: str = "Budi") -> dict:
	resp = client.post("/api/auth/register", json={"name": name, "email": email, "password": PASSWORD})
	assert resp.status_code == 200, resp.text
	resp = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
	assert resp.status_code == 200, resp.text
	return resp.json()


@pytest.fixture
def auth_client(client) -> TestClient:
	signup(client)
	return client


def create_account(client: TestClient, name: str = "BCA", type_: str = "bank", balance: float = 1_000_000) -> dict:
	resp = client.post("/api/account-balance", json={"name": name, "type": type_, "balance": balance})
	assert resp.status_code == 200, resp.text
	return resp.json()


def balance_of(client: TestClient, account_id: int) -> float:
	accounts = client.get("/api/account-balance").json()
	return next(a["balance"] for a in accounts if a["id"] == account_id)


def create_budget(client: TestClient, name: str = "Makan", limit: float = 500_000, month: str = "2024-05", **extra) -> dict:
	resp = client.post("/api/budgets", json={"name": name, "limit": limit, "month": month, **extra})
	assert resp.status_code == 201, resp.text
	return resp.json()


def create_expense(client: TestClient, account_id: int, amount: float = 25_000, **fields) -> dict:
	data = {
		"title": "Makan siang",
		"amount": str(amount),
		"category": "food",
		"date": "2024-05-10",
		"accountId": str(account_id),
	}
	data.update({k: str(v) for k, v in fields.items()})
	resp = client.post("/api/expenses", data=data)
	assert resp.status_code == 200, resp.text
	return resp.json()
