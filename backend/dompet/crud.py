from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Sequence

import structlog
from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .dates import format_month, month_range, same_month, to_month_start
from .errors import DompetError, NotFoundError
from .models import AccountBalance, AccountTransfer, Asset, Budget, Expense, Income, User

logger = structlog.get_logger(__name__)

# Marks an update argument that was not supplied by the caller.
KEEP: Any = object()

CENT = Decimal("0.01")
# Numeric(14, 2) holds at most 12 integer digits.
MAX_MONEY = Decimal("1e12")


def parse_month(value: str | None) -> date:
	try:
		return to_month_start(value)
	except ValueError as exc:
		raise DompetError("Format bulan tidak valid") from exc


def _clean(value: str | None) -> str | None:
	value = (value or "").strip()
	return value or None


def to_money(value: Any) -> Decimal | None:
	"""Round to whole cents. ``None`` and blank strings give ``None``; NaN, infinities and
	amounts too large for the money columns are rejected.
	"""
	if value is None or (isinstance(value, str) and not value.strip()):
		return None
	try:
		amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
	except InvalidOperation as exc:
		raise DompetError("Jumlah tidak valid") from exc
	if not amount.is_finite() or abs(amount) >= MAX_MONEY:
		raise DompetError("Jumlah tidak valid")
	return amount.quantize(CENT, rounding=ROUND_HALF_UP)


# Users
async def get_user(session: AsyncSession, user_id: int) -> User | None:
	return await session.get(User, user_id)


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
	return await session.scalar(select(User).where(User.email == email.lower()))


async def create_user(session: AsyncSession, name: str | None, email: str, password_hash: str) -> User:
	user = User(name=name, email=email.lower(), password_hash=password_hash)
	session.add(user)
	await session.commit()
	await session.refresh(user)
	return user


# Account balances
async def _owned_account(session: AsyncSession, user_id: int, account_id: int) -> AccountBalance:
	account = await session.scalar(
		select(AccountBalance).where(AccountBalance.id == account_id, AccountBalance.user_id == user_id)
	)
	if account is None:
		raise NotFoundError("Akun tidak ditemukan")
	return account


def _rounded(expr):  # type: ignore[no-untyped-def]
	# SQLite keeps NUMERIC as REAL; rounding keeps stored balances on whole cents.
	return func.round(expr, 2)


async def _adjust_balance(session: AsyncSession, account_id: int, delta: Decimal) -> None:
	await session.execute(
		update(AccountBalance)
		.where(AccountBalance.id == account_id)
		.values(balance=_rounded(AccountBalance.balance + delta))
		.execution_options(synchronize_session=False)
	)


async def _ensure_single_cash(session: AsyncSession, user_id: int, exclude_id: int | None = None) -> None:
	stmt = select(AccountBalance.id).where(AccountBalance.user_id == user_id, AccountBalance.type == "cash")
	if exclude_id is not None:
		stmt = stmt.where(AccountBalance.id != exclude_id)
	if await session.scalar(stmt.limit(1)) is not None:
		raise DompetError("Akun cash sudah ada. Tidak boleh lebih dari 1.")


async def list_accounts(session: AsyncSession, user_id: int) -> Sequence[AccountBalance]:
	"""All accounts of the user, oldest first. A ``Cash`` account is created on first access."""
	cash_id = await session.scalar(
		select(AccountBalance.id)
		.where(AccountBalance.user_id == user_id, AccountBalance.type == "cash")
		.limit(1)
	)
	if cash_id is None:
		session.add(AccountBalance(user_id=user_id, name="Cash", type="cash", balance=0))
		await session.commit()
		logger.info("cash_account_created", user_id=user_id)

	result = await session.execute(
		select(AccountBalance)
		.where(AccountBalance.user_id == user_id)
		.order_by(AccountBalance.created_at, AccountBalance.id)
	)
	return result.scalars().all()


async def create_account(
	session: AsyncSession,
	user_id: int,
	*,
	name: str | None,
	type_: str | None,
	balance: Decimal | float | None,
) -> AccountBalance:
	name = _clean(name)
	if not name or not type_:
		raise DompetError("Nama dan tipe wajib diisi")
	balance = to_money(balance)
	if type_ == "cash":
		await _ensure_single_cash(session, user_id)

	account = AccountBalance(user_id=user_id, name=name, type=type_, balance=balance or Decimal("0"))
	session.add(account)
	await session.commit()
	await session.refresh(account)
	logger.info("account_created", user_id=user_id, account_id=account.id, type=type_)
	return account


async def update_account(
	session: AsyncSession,
	user_id: int,
	account_id: int,
	*,
	name: str | None,
	type_: str | None,
	balance: Decimal | float | None,
) -> AccountBalance:
	name = _clean(name)
	if not name or not type_:
		raise DompetError("Nama dan jenis wajib diisi")
	balance = to_money(balance)
	account = await _owned_account(session, user_id, account_id)
	if type_ == "cash":
		await _ensure_single_cash(session, user_id, exclude_id=account.id)

	account.name = name
	account.type = type_
	if balance is not None:
		account.balance = balance
	await session.commit()
	await session.refresh(account)
	return account


async def delete_account(session: AsyncSession, user_id: int, account_id: int) -> None:
	account = await _owned_account(session, user_id, account_id)

	used_by_expense = await session.scalar(select(Expense.id).where(Expense.account_id == account.id).limit(1))
	if used_by_expense is not None:
		raise DompetError("Akun ini masih dipakai pada transaksi pengeluaran. Tidak bisa dihapus.")
	used_by_income = await session.scalar(select(Income.id).where(Income.account_id == account.id).limit(1))
	if used_by_income is not None:
		raise DompetError("Akun ini masih dipakai pada transaksi pemasukan. Tidak bisa dihapus.")
	used_by_transfer = await session.scalar(
		select(AccountTransfer.id)
		.where((AccountTransfer.from_account_id == account.id) | (AccountTransfer.to_account_id == account.id))
		.limit(1)
	)
	if used_by_transfer is not None:
		raise DompetError("Akun ini masih dipakai pada transfer. Tidak bisa dihapus.")

	await session.delete(account)
	await session.commit()
	logger.info("account_deleted", user_id=user_id, account_id=account_id)


# Expenses
async def _validated_budget_id(session: AsyncSession, user_id: int, budget_id: int, date_: date) -> int:
	budget = await session.scalar(select(Budget).where(Budget.id == budget_id, Budget.user_id == user_id))
	if budget is None:
		raise NotFoundError("Budget tidak ditemukan")
	if not same_month(date_, budget.month):
		raise DompetError("Tanggal pengeluaran harus berada di bulan yang sama dengan budget")
	return budget.id


def _check_amount(value: Any) -> Decimal:
	amount = to_money(value)
	if amount is None or amount <= 0:
		raise DompetError("Jumlah harus lebih dari 0")
	return amount


async def list_expenses(
	session: AsyncSession,
	user_id: int,
	*,
	category: str | None = None,
	start: date | None = None,
	end: date | None = None,
	end_exclusive: bool = False,
) -> Sequence[Expense]:
	stmt: Select[tuple[Expense]] = (
		select(Expense).options(selectinload(Expense.budget)).where(Expense.user_id == user_id)
	)
	if category:
		stmt = stmt.where(Expense.category == category)
	if start is not None:
		stmt = stmt.where(Expense.date >= start)
	if end is not None:
		stmt = stmt.where(Expense.date < end if end_exclusive else Expense.date <= end)
	stmt = stmt.order_by(Expense.date.desc(), Expense.id.desc())
	result = await session.execute(stmt)
	return result.scalars().all()


async def get_expense(session: AsyncSession, user_id: int, expense_id: int) -> Expense:
	expense = await session.scalar(select(Expense).where(Expense.id == expense_id, Expense.user_id == user_id))
	if expense is None:
		raise NotFoundError("Not found")
	return expense


async def create_expense(
	session: AsyncSession,
	user_id: int,
	*,
	title: str | None,
	amount: Decimal | float | str | None,
	category: str | None,
	description: str | None,
	date_: date,
	account_id: int | None,
	budget_id: int | None = None,
	photo_url: str | None = None,
) -> Expense:
	"""Insert the expense and debit its account in one transaction."""
	if not account_id:
		raise DompetError("Account required")
	title = _clean(title)
	if not title:
		raise DompetError("Judul wajib diisi")
	amount = _check_amount(amount)
	await _owned_account(session, user_id, account_id)
	if budget_id is not None:
		budget_id = await _validated_budget_id(session, user_id, budget_id, date_)

	expense = Expense(
		user_id=user_id,
		title=title,
		amount=amount,
		category=_clean(category),
		description=_clean(description),
		photo_url=photo_url,
		date=date_,
		account_id=account_id,
		budget_id=budget_id,
	)
	session.add(expense)
	await _adjust_balance(session, account_id, -amount)
	await session.commit()
	await session.refresh(expense)
	logger.info("expense_created", user_id=user_id, expense_id=expense.id, account_id=account_id, amount=amount)
	return expense


async def update_expense(
	session: AsyncSession,
	user_id: int,
	expense_id: int,
	*,
	title: str | None,
	amount: Decimal | float | str | None,
	category: str | None,
	description: str | None,
	date_: date | None,
	account_id: int | None,
	budget_id: Any = KEEP,
	photo_url: Any = KEEP,
) -> Expense:
	"""Roll back the old debit, then apply the new one, in one transaction.

	``date_`` or ``account_id`` left as ``None`` keep the stored values.
	``budget_id`` left as ``KEEP`` keeps the current budget (re-checked against
	the date); ``None`` detaches the expense.
	"""
	expense = await get_expense(session, user_id, expense_id)
	title = _clean(title)
	if not title:
		raise DompetError("Judul wajib diisi")
	amount = _check_amount(amount)
	date_ = date_ or expense.date
	account_id = account_id or expense.account_id
	await _owned_account(session, user_id, account_id)

	if budget_id is KEEP:
		budget_id = expense.budget_id
	if budget_id is not None:
		budget_id = await _validated_budget_id(session, user_id, budget_id, date_)

	old_account_id, old_amount = expense.account_id, expense.amount
	await _adjust_balance(session, old_account_id, old_amount)

	expense.title = title
	expense.amount = amount
	expense.category = _clean(category)
	expense.description = _clean(description)
	expense.date = date_
	expense.account_id = account_id
	expense.budget_id = budget_id
	if photo_url is not KEEP:
		expense.photo_url = photo_url

	await _adjust_balance(session, account_id, -amount)
	await session.commit()
	await session.refresh(expense)
	logger.info(
		"expense_updated",
		user_id=user_id,
		expense_id=expense.id,
		old_account_id=old_account_id,
		old_amount=old_amount,
		account_id=account_id,
		amount=amount,
	)
	return expense


async def delete_expense(session: AsyncSession, user_id: int, expense_id: int) -> Expense:
	expense = await get_expense(session, user_id, expense_id)
	await _adjust_balance(session, expense.account_id, expense.amount)
	await session.delete(expense)
	await session.commit()
	logger.info("expense_deleted", user_id=user_id, expense_id=expense_id, account_id=expense.account_id)
	return expense


# Incomes
async def list_incomes(session: AsyncSession, user_id: int, limit: int | None = None) -> Sequence[Income]:
	stmt = (
		select(Income)
		.options(selectinload(Income.account))
		.where(Income.user_id == user_id)
		.order_by(Income.date.desc(), Income.id.desc())
	)
	if limit is not None:
		stmt = stmt.limit(limit)
	result = await session.execute(stmt)
	return result.scalars().all()


async def get_income(session: AsyncSession, user_id: int, income_id: int) -> Income:
	income = await session.scalar(select(Income).where(Income.id == income_id, Income.user_id == user_id))
	if income is None:
		raise NotFoundError("Not found")
	return income


async def create_income(
	session: AsyncSession,
	user_id: int,
	*,
	title: str | None,
	amount: Decimal | float | None,
	date_: date,
	account_id: int | None,
) -> Income:
	title = _clean(title)
	amount = to_money(amount)
	if not title or not amount or amount <= 0 or not account_id:
		raise DompetError("Invalid input")
	await _owned_account(session, user_id, account_id)

	income = Income(user_id=user_id, title=title, amount=amount, date=date_, account_id=account_id)
	session.add(income)
	await _adjust_balance(session, account_id, amount)
	await session.commit()
	await session.refresh(income)
	logger.info("income_created", user_id=user_id, income_id=income.id, account_id=account_id, amount=amount)
	return income


async def update_income(
	session: AsyncSession,
	user_id: int,
	income_id: int,
	*,
	title: str | None,
	amount: Decimal | float | None,
	date_: date | None,
	account_id: int | None,
) -> Income:
	income = await get_income(session, user_id, income_id)
	title = _clean(title)
	amount = to_money(amount)
	if not title or not amount or amount <= 0:
		raise DompetError("Invalid input")
	account_id = account_id or income.account_id
	await _owned_account(session, user_id, account_id)

	await _adjust_balance(session, income.account_id, -income.amount)
	income.title = title
	income.amount = amount
	income.account_id = account_id
	if date_ is not None:
		income.date = date_
	await _adjust_balance(session, account_id, amount)
	await session.commit()
	await session.refresh(income)
	logger.info("income_updated", user_id=user_id, income_id=income.id, account_id=account_id, amount=amount)
	return income


async def delete_income(session: AsyncSession, user_id: int, income_id: int) -> None:
	income = await get_income(session, user_id, income_id)
	await _adjust_balance(session, income.account_id, -income.amount)
	await session.delete(income)
	await session.commit()
	logger.info("income_deleted", user_id=user_id, income_id=income_id, account_id=income.account_id)


# Transfers
async def list_transfers(
	session: AsyncSession,
	user_id: int,
	*,
	start: date | None = None,
	end: date | None = None,
	limit: int | None = None,
) -> Sequence[AccountTransfer]:
	stmt = (
		select(AccountTransfer)
		.options(selectinload(AccountTransfer.from_account), selectinload(AccountTransfer.to_account))
		.where(AccountTransfer.user_id == user_id)
	)
	if start is not None:
		stmt = stmt.where(AccountTransfer.date >= start)
	if end is not None:
		stmt = stmt.where(AccountTransfer.date < end)
	stmt = stmt.order_by(AccountTransfer.date.desc(), AccountTransfer.id.desc())
	if limit is not None:
		stmt = stmt.limit(limit)
	result = await session.execute(stmt)
	return result.scalars().all()


async def create_transfer(
	session: AsyncSession,
	user_id: int,
	*,
	from_account_id: int | None,
	to_account_id: int | None,
	amount: Decimal | float | None,
	note: str | None,
	date_: date,
) -> AccountTransfer:
	"""Debit the source and credit the destination atomically."""
	amount = to_money(amount)
	if not from_account_id or not to_account_id or not amount:
		raise DompetError("Data tidak lengkap")
	if amount < 0:
		raise DompetError("Jumlah harus lebih dari 0")
	if from_account_id == to_account_id:
		raise DompetError("Akun tidak boleh sama")

	source = await _owned_account(session, user_id, from_account_id)
	await _owned_account(session, user_id, to_account_id)
	if source.balance < amount:
		logger.info("transfer_rejected", user_id=user_id, from_account_id=from_account_id, amount=amount)
		raise DompetError("Saldo akun asal tidak mencukupi")

	transfer = AccountTransfer(
		user_id=user_id,
		from_account_id=from_account_id,
		to_account_id=to_account_id,
		amount=amount,
		note=_clean(note),
		date=date_,
	)
	try:
		# Guarded debit: a concurrent debit that drained the source matches no row.
		debit = await session.execute(
			update(AccountBalance)
			.where(AccountBalance.id == from_account_id, AccountBalance.balance >= amount)
			.values(balance=_rounded(AccountBalance.balance - amount))
			.execution_options(synchronize_session=False)
		)
		if debit.rowcount == 0:
			logger.info("transfer_rejected", user_id=user_id, from_account_id=from_account_id, amount=amount)
			raise DompetError("Saldo akun asal tidak mencukupi")
		await _adjust_balance(session, to_account_id, amount)
		session.add(transfer)
		await session.commit()
	except Exception:
		await session.rollback()
		raise
	await session.refresh(transfer)
	logger.info(
		"transfer_created",
		user_id=user_id,
		transfer_id=transfer.id,
		from_account_id=from_account_id,
		to_account_id=to_account_id,
		amount=amount,
	)
	return transfer


async def delete_transfer(session: AsyncSession, user_id: int, transfer_id: int) -> None:
	transfer = await session.scalar(
		select(AccountTransfer).where(AccountTransfer.id == transfer_id, AccountTransfer.user_id == user_id)
	)
	if transfer is None:
		raise NotFoundError("Transfer tidak ditemukan")
	await _adjust_balance(session, transfer.from_account_id, transfer.amount)
	await _adjust_balance(session, transfer.to_account_id, -transfer.amount)
	await session.delete(transfer)
	await session.commit()
	logger.info("transfer_deleted", user_id=user_id, transfer_id=transfer_id)


# Budgets
def _validated_budget_fields(name: str | None, limit: Decimal | float | None) -> tuple[str, Decimal]:
	name = _clean(name)
	limit = to_money(limit)
	if not name or limit is None or limit <= 0:
		raise DompetError("Nama dan limit budget wajib diisi")
	return name, limit


async def _owned_budget(session: AsyncSession, user_id: int, budget_id: int) -> Budget:
	budget = await session.scalar(select(Budget).where(Budget.id == budget_id, Budget.user_id == user_id))
	if budget is None:
		raise NotFoundError("Budget tidak ditemukan")
	return budget


async def budget_spending(session: AsyncSession, user_id: int, month_start: date) -> dict[int, float]:
	"""Sum of expenses per budget id for dates inside the month."""
	start, end = month_range(month_start)
	stmt = (
		select(Expense.budget_id, func.sum(Expense.amount))
		.where(Expense.user_id == user_id)
		.where(Expense.budget_id.is_not(None))
		.where(Expense.date >= start, Expense.date < end)
		.group_by(Expense.budget_id)
	)
	rows = (await session.execute(stmt)).all()
	return {budget_id: float(total or 0.0) for budget_id, total in rows if budget_id is not None}


async def list_budgets(session: AsyncSession, user_id: int, month_start: date) -> dict[str, Any]:
	start, _ = month_range(month_start)
	result = await session.execute(
		select(Budget)
		.where(Budget.user_id == user_id, Budget.month == start)
		.order_by(Budget.created_at, Budget.id)
	)
	budgets = result.scalars().all()
	spent_by_budget = await budget_spending(session, user_id, start)

	payload = []
	for budget in budgets:
		spent = spent_by_budget.get(budget.id, 0.0)
		payload.append({
			"id": budget.id,
			"name": budget.name,
			"category": budget.category,
			"limit": float(budget.limit),
			"month": budget.month,
			"notes": budget.notes,
			"created_at": budget.created_at,
			"spent": spent,
			"remaining": max(float(budget.limit) - spent, 0.0),
			"month_key": format_month(budget.month),
		})
	return {"month": format_month(start), "budgets": payload}


async def recent_budgets(session: AsyncSession, user_id: int, limit: int) -> Sequence[Budget]:
	result = await session.execute(
		select(Budget).where(Budget.user_id == user_id).order_by(Budget.month.desc(), Budget.id.desc()).limit(limit)
	)
	return result.scalars().all()


async def create_budget(
	session: AsyncSession,
	user_id: int,
	*,
	name: str | None,
	limit: Decimal | float | None,
	category: str | None,
	notes: str | None,
	month: str | None,
) -> Budget:
	name, limit = _validated_budget_fields(name, limit)
	budget = Budget(
		user_id=user_id,
		name=name,
		limit=limit,
		category=_clean(category),
		notes=_clean(notes),
		month=parse_month(month),
	)
	session.add(budget)
	await session.commit()
	await session.refresh(budget)
	logger.info("budget_created", user_id=user_id, budget_id=budget.id, month=format_month(budget.month))
	return budget


async def update_budget(
	session: AsyncSession,
	user_id: int,
	budget_id: int,
	*,
	name: str | None,
	limit: Decimal | float | None,
	category: str | None,
	notes: str | None,
	month: str | None,
) -> Budget:
	budget = await _owned_budget(session, user_id, budget_id)
	name, limit = _validated_budget_fields(name, limit)
	budget.name = name
	budget.limit = limit
	budget.category = _clean(category)
	budget.notes = _clean(notes)
	if month:
		budget.month = parse_month(month)
	await session.commit()
	await session.refresh(budget)
	return budget


async def delete_budget(session: AsyncSession, user_id: int, budget_id: int) -> None:
	"""Detach linked expenses, then delete the budget."""
	budget = await _owned_budget(session, user_id, budget_id)
	await session.execute(
		update(Expense)
		.where(Expense.budget_id == budget.id, Expense.user_id == user_id)
		.values(budget_id=None)
	)
	await session.execute(delete(Budget).where(Budget.id == budget.id))
	await session.commit()
	logger.info("budget_deleted", user_id=user_id, budget_id=budget_id)


# Assets
async def list_assets(session: AsyncSession, user_id: int, limit: int | None = None) -> Sequence[Asset]:
	stmt = select(Asset).where(Asset.user_id == user_id).order_by(Asset.created_at.desc(), Asset.id.desc())
	if limit is not None:
		stmt = stmt.limit(limit)
	result = await session.execute(stmt)
	return result.scalars().all()


async def _owned_asset(session: AsyncSession, user_id: int, asset_id: int) -> Asset:
	asset = await session.scalar(select(Asset).where(Asset.id == asset_id, Asset.user_id == user_id))
	if asset is None:
		raise NotFoundError("Aset tidak ditemukan")
	return asset


async def create_asset(
	session: AsyncSession,
	user_id: int,
	*,
	name: str,
	amount: float,
	buy_price: float,
	type_: str | None,
	category: str | None,
	color: str | None,
	coin_id: str | None,
) -> Asset:
	type_ = type_ or "stock"
	asset = Asset(
		user_id=user_id,
		name=name,
		amount=amount,
		buy_price=buy_price,
		type=type_,
		category=category or type_,
		color=color or "bg-gray-500",
		coin_id=coin_id or None,
	)
	session.add(asset)
	await session.commit()
	await session.refresh(asset)
	logger.info("asset_created", user_id=user_id, asset_id=asset.id, type=type_)
	return asset


async def update_asset(session: AsyncSession, user_id: int, asset_id: int, changes: dict[str, Any]) -> Asset:
	"""Apply ``changes`` (column name -> value); keys not present are left untouched."""
	asset = await _owned_asset(session, user_id, asset_id)
	if any(changes.get(field, 0) is None for field in ("amount", "buy_price")):
		raise DompetError("Jumlah dan harga beli wajib diisi")
	for field, value in changes.items():
		if field in ("name", "type", "category", "color") and not value:
			continue
		setattr(asset, field, value)
	await session.commit()
	await session.refresh(asset)
	return asset


async def delete_asset(session: AsyncSession, user_id: int, asset_id: int) -> None:
	asset = await _owned_asset(session, user_id, asset_id)
	await session.delete(asset)
	await session.commit()
	logger.info("asset_deleted", user_id=user_id, asset_id=asset_id)


# Analytics
async def monthly_totals(session: AsyncSession, user_id: int) -> dict[tuple[int, int], dict[str, float]]:
	"""Income and expense sums keyed by ``(year, month)``."""
	monthly: dict[tuple[int, int], dict[str, float]] = {}
	for model, kind in ((Income, "income"), (Expense, "expense")):
		rows = (
			await session.execute(select(model.date, model.amount).where(model.user_id == user_id))
		).all()
		for d, amount in rows:
			key = (d.year, d.month)
			if key not in monthly:
				monthly[key] = {"income": 0.0, "expense": 0.0}
			monthly[key][kind] += float(amount)
	return monthly
