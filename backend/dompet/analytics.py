from __future__ import annotations

from datetime import date
from typing import Iterable, Mapping

EXPENSE_CATEGORIES = [
	{"value": "food", "label": "Makanan & Minuman"},
	{"value": "transport", "label": "Transportasi"},
	{"value": "shopping", "label": "Belanja"},
	{"value": "bills", "label": "Tagihan"},
	{"value": "entertainment", "label": "Hiburan"},
	{"value": "health", "label": "Kesehatan"},
	{"value": "education", "label": "Pendidikan"},
	{"value": "other", "label": "Lainnya"},
]

_LABELS = {c["value"]: c["label"] for c in EXPENSE_CATEGORIES}


def category_label(category: str | None) -> str:
	return _LABELS.get(category or "") or category or "Lainnya"


def format_idr(value: float) -> str:
	"""Rupiah without decimals, dot-grouped: ``Rp 1.250.000``."""
	sign = "-" if value < 0 else ""
	grouped = f"{abs(round(value)):,.0f}".replace(",", ".")
	return f"{sign}Rp {grouped}"


def limit_number(value: float | None, decimals: int = 2) -> float:
	if value is None or value != value or value in (float("inf"), float("-inf")):
		return 0.0
	return round(value, decimals)


def expense_summary(expenses: Iterable[tuple[float, str | None]]) -> dict:
	"""Total, count, average and per-category totals of ``(amount, category)`` pairs."""
	total = 0.0
	count = 0
	category_totals: dict[str, float] = {}
	for amount, category in expenses:
		total += float(amount)
		count += 1
		key = category or "other"
		category_totals[key] = category_totals.get(key, 0.0) + float(amount)

	top = max(category_totals, key=category_totals.__getitem__) if category_totals else None
	return {
		"total": total,
		"count": count,
		"average": total / count if count else 0.0,
		"top_category": category_label(top) if top else "-",
		"category_totals": category_totals,
	}


def cashflow_points(monthly: Mapping[tuple[int, int], Mapping[str, float]]) -> list[dict]:
	points: list[dict] = []
	for (y, m) in sorted(monthly.keys()):
		income = monthly[(y, m)]["income"]
		expense = monthly[(y, m)]["expense"]
		points.append({
			"date": date(y, m, 1),
			"income": float(income),
			"expense": float(expense),
			"net": float(income - expense),
		})
	return points


def portfolio(assets: Iterable, prices: Mapping[str, float]) -> dict:
	"""Value each asset at its live price (coin assets) or buy price, and total it up."""
	rows: list[dict] = []
	allocation: dict[str, float] = {}
	total_value = 0.0
	total_cost = 0.0
	for asset in assets:
		amount = float(asset.amount)
		buy_price = float(asset.buy_price)
		current = prices.get(asset.coin_id) if asset.coin_id else None
		current_price = float(current) if current else buy_price
		value = amount * current_price
		cost = amount * buy_price
		total_value += value
		total_cost += cost
		allocation[asset.category] = allocation.get(asset.category, 0.0) + value
		rows.append({
			"id": asset.id,
			"name": asset.name,
			"type": asset.type,
			"category": asset.category,
			"color": asset.color,
			"amount": amount,
			"buy_price": buy_price,
			"coin_id": asset.coin_id,
			"position_x": asset.position_x,
			"position_y": asset.position_y,
			"created_at": asset.created_at,
			"current_price": current_price,
			"value": value,
			"profit": value - cost,
		})

	total_profit = total_value - total_cost
	return {
		"assets": rows,
		"total_value": total_value,
		"total_cost": total_cost,
		"total_profit": total_profit,
		"profit_percentage": (total_profit / total_cost * 100) if total_cost else 0.0,
		"allocation": [
			{"label": label, "value": value}
			for label, value in sorted(allocation.items(), key=lambda kv: kv[1], reverse=True)
			if value > 0
		],
	}
