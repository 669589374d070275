from __future__ import annotations

import re
from datetime import date, datetime, timezone

_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


def today() -> date:
	return datetime.now(timezone.utc).date()


def to_month_start(value: str | None) -> date:
	"""Parse ``YYYY-MM`` into the first day of that month; empty means the current month."""
	if not value:
		return today().replace(day=1)
	if not _MONTH_RE.match(value):
		raise ValueError(f"invalid month format: {value!r}")
	year, month = (int(part) for part in value.split("-"))
	if not year or month < 1 or month > 12:
		raise ValueError(f"invalid month value: {value!r}")
	return date(year, month, 1)


def next_month(start: date) -> date:
	if start.month == 12:
		return date(start.year + 1, 1, 1)
	return date(start.year, start.month + 1, 1)


def month_range(start: date) -> tuple[date, date]:
	"""Half-open ``[start, end)`` range covering the month of ``start``."""
	start = start.replace(day=1)
	return start, next_month(start)


def format_month(d: date) -> str:
	return f"{d.year:04d}-{d.month:02d}"


def same_month(a: date, b: date) -> bool:
	return a.year == b.year and a.month == b.month


def parse_date(value: str | date | None) -> date:
	if value is None or value == "":
		return today()
	if isinstance(value, datetime):
		return value.date()
	if isinstance(value, date):
		return value
	try:
		return date.fromisoformat(value)
	except ValueError:
		return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
