from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Tuple

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud
from .analytics import format_idr, limit_number
from .config import Settings
from .dates import format_month
from .errors import DompetError, UpstreamError

logger = structlog.get_logger(__name__)

NO_RESPONSE = "Tidak ada respon."
WINDOW_SECONDS = 24 * 60 * 60

SYSTEM_PROMPT = (
	"Anda adalah asisten keuangan. Gunakan data JSON berikut untuk menjawab ringkas dan actionable. "
	"Jika data kurang, minta klarifikasi. Jangan berikan saran investasi spesifik jika data tidak cukup.\n"
	"CONTEXT:\n{context}"
)


class DailyRateLimiter:
	"""Fixed 24h window per user, counted in memory."""

	def __init__(self, limit: int, window_seconds: float = WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
		self.limit = limit
		self.window = window_seconds
		self._clock = clock
		self._usage: Dict[str, Tuple[int, float]] = {}

	def hit(self, key: str) -> bool:
		"""Record one call; False once the quota for the current window is used up."""
		now = self._clock()
		current = self._usage.get(key)
		if current and now < current[1]:
			count, reset_at = current
			if count >= self.limit:
				return False
			self._usage[key] = (count + 1, reset_at)
			return True
		self._usage[key] = (1, now + self.window)
		return True


def extract_content(message: Dict[str, Any] | None) -> str:
	"""Plain text from a chat message whose content is a string or a list of blocks."""
	content = (message or {}).get("content")
	if not content:
		return NO_RESPONSE
	if isinstance(content, str):
		return content.strip() or NO_RESPONSE
	if isinstance(content, list):
		parts = []
		for block in content:
			if not isinstance(block, dict):
				continue
			if isinstance(block.get("text"), str):
				parts.append(block["text"])
			elif isinstance(block.get("content"), list):
				parts.append("".join(inner.get("text") or "" for inner in block["content"] if isinstance(inner, dict)))
		return "".join(parts).strip() or NO_RESPONSE
	return NO_RESPONSE


async def build_user_context(session: AsyncSession, user_id: int) -> Dict[str, Any]:
	assets = await crud.list_assets(session, user_id, limit=20)
	balances = await crud.list_accounts(session, user_id)
	expenses = (await crud.list_expenses(session, user_id))[:20]
	incomes = await crud.list_incomes(session, user_id, limit=10)
	budgets = await crud.recent_budgets(session, user_id, limit=6)
	transfers = await crud.list_transfers(session, user_id, limit=10)

	total_balance = sum(float(b.balance or 0) for b in balances)
	expense_recent = sum(float(e.amount or 0) for e in expenses)
	income_recent = sum(float(i.amount or 0) for i in incomes)

	return {
		"summary": {
			"totalBalance": format_idr(total_balance),
			"expenseRecentTotal": format_idr(expense_recent),
			"incomeRecentTotal": format_idr(income_recent),
			"netRecent": format_idr(income_recent - expense_recent),
		},
		"assets": [
			{
				"id": a.id,
				"name": a.name,
				"type": a.type,
				"coinId": a.coin_id,
				"amount": limit_number(a.amount, 4),
				"buyPrice": limit_number(a.buy_price, 2),
				"category": a.category,
			}
			for a in assets
		],
		"balances": [{"id": b.id, "name": b.name, "type": b.type, "balance": float(b.balance)} for b in balances],
		"expenses": [
			{
				"id": e.id,
				"title": e.title,
				"amount": float(e.amount),
				"category": e.category,
				"date": e.date.isoformat(),
				"accountId": e.account_id,
				"budgetId": e.budget_id,
			}
			for e in expenses
		],
		"incomes": [
			{"id": i.id, "title": i.title, "amount": float(i.amount), "date": i.date.isoformat(), "accountId": i.account_id}
			for i in incomes
		],
		"budgets": [
			{
				"id": b.id,
				"name": b.name,
				"category": b.category,
				"limit": float(b.limit),
				"month": format_month(b.month),
				"notes": b.notes,
			}
			for b in budgets
		],
		"transfers": [
			{
				"id": t.id,
				"amount": float(t.amount),
				"note": t.note,
				"date": t.date.isoformat(),
				"fromAccountId": t.from_account_id,
				"toAccountId": t.to_account_id,
			}
			for t in transfers
		],
	}


async def request_completion(
	settings: Settings,
	*,
	model: str,
	context: Dict[str, Any],
	message: str,
	transport: httpx.AsyncBaseTransport | None = None,
) -> str:
	payload = {
		"model": model,
		"stream": False,
		"messages": [
			{"role": "system", "content": SYSTEM_PROMPT.format(context=json.dumps(context, indent=2))},
			{"role": "user", "content": message},
		],
		"temperature": 0.4,
		"max_tokens": 400,
	}
	headers = {
		"Authorization": f"Bearer {settings.openrouter_api_key}",
		"HTTP-Referer": settings.app_url,
		"X-Title": "AI Finance Tracker",
	}
	async with httpx.AsyncClient(timeout=60, transport=transport) as client:
		try:
			resp = await client.post(f"{settings.openrouter_base_url}/chat/completions", json=payload, headers=headers)
		except httpx.HTTPError as exc:
			logger.error("ai_request_failed", model=model, error=str(exc))
			raise DompetError("Internal Server Error", status_code=500) from exc
	if resp.status_code >= 400:
		logger.warning("ai_bad_status", model=model, status=resp.status_code)
		raise UpstreamError("AI service error")

	choices = resp.json().get("choices") or []
	return extract_content(choices[0].get("message") if choices else None)
