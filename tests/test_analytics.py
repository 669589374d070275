from datetime import date, datetime
from types import SimpleNamespace

import pytest

from dompet.analytics import cashflow_points, category_label, expense_summary, format_idr, limit_number, portfolio


class TestExpenseSummary:
	"""Tests for the per-month expense summary."""

	def test_totals_and_top_category(self):
		summary = expense_summary([(10_000, "food"), (50_000, "transport"), (20_000, "food")])
		assert summary["total"] == 80_000
		assert summary["count"] == 3
		assert summary["average"] == pytest.approx(80_000 / 3)
		assert summary["category_totals"] == {"food": 30_000, "transport": 50_000}
		assert summary["top_category"] == "Transportasi"

	def test_missing_category_counts_as_other(self):
		summary = expense_summary([(5_000, None)])
		assert summary["category_totals"] == {"other": 5_000}
		assert summary["top_category"] == "Lainnya"

	def test_empty(self):
		summary = expense_summary([])
		assert summary == {"total": 0.0, "count": 0, "average": 0.0, "top_category": "-", "category_totals": {}}


def test_category_label_falls_back_to_raw_value():
	assert category_label("food") == "Makanan & Minuman"
	assert category_label("crypto") == "crypto"
	assert category_label(None) == "Lainnya"


def test_format_idr():
	assert format_idr(1_250_000) == "Rp 1.250.000"
	assert format_idr(0) == "Rp 0"
	assert format_idr(-5_000) == "-Rp 5.000"


def test_limit_number():
	assert limit_number(1.23456, 2) == 1.23
	assert limit_number(float("nan")) == 0.0
	assert limit_number(None) == 0.0


def test_cashflow_points_sorted_by_month():
	points = cashflow_points({
		(2024, 6): {"income": 100.0, "expense": 30.0},
		(2024, 5): {"income": 0.0, "expense": 20.0},
	})
	assert [p["date"] for p in points] == [date(2024, 5, 1), date(2024, 6, 1)]
	assert points[0]["net"] == -20.0
	assert points[1]["net"] == 70.0


def _asset(id_, category, amount, buy_price, coin_id=None):
	return SimpleNamespace(
		id=id_, name=f"asset-{id_}", type=category, category=category, color="bg-gray-500",
		amount=amount, buy_price=buy_price, coin_id=coin_id, position_x=None, position_y=None,
		created_at=datetime(2024, 5, 1),
	)


class TestPortfolio:
	def test_live_price_for_coins_buy_price_otherwise(self):
		assets = [_asset(1, "crypto", 2, 100.0, coin_id="bitcoin"), _asset(2, "stock", 10, 50.0)]
		result = portfolio(assets, {"bitcoin": 150.0})

		btc, stock = result["assets"]
		assert btc["current_price"] == 150.0
		assert btc["value"] == 300.0
		assert btc["profit"] == 100.0
		assert stock["current_price"] == 50.0
		assert stock["profit"] == 0.0
		assert result["total_value"] == 800.0
		assert result["total_cost"] == 700.0
		assert result["profit_percentage"] == pytest.approx(100 / 7)
		assert result["allocation"] == [{"label": "stock", "value": 500.0}, {"label": "crypto", "value": 300.0}]

	def test_missing_price_uses_buy_price(self):
		result = portfolio([_asset(1, "crypto", 1, 200.0, coin_id="dogecoin")], {})
		assert result["assets"][0]["current_price"] == 200.0
		assert result["total_profit"] == 0.0

	def test_empty(self):
		result = portfolio([], {})
		assert result["total_value"] == 0.0
		assert result["profit_percentage"] == 0.0
		assert result["allocation"] == []
