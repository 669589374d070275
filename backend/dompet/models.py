from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base

ACCOUNT_TYPES = ("cash", "bank", "ewallet")


def utcnow() -> datetime:
	return datetime.now(timezone.utc).replace(tzinfo=None)


def money() -> Numeric:
	return Numeric(14, 2, asdecimal=True)


class User(Base):
	__tablename__ = "users"

	id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
	name: Mapped[Optional[str]] = mapped_column(String(100))
	email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
	password_hash: Mapped[str] = mapped_column(String(100), nullable=False)
	created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

	accounts: Mapped[list["AccountBalance"]] = relationship(back_populates="user", cascade="all, delete-orphan")
	expenses: Mapped[list["Expense"]] = relationship(back_populates="user", cascade="all, delete-orphan")
	incomes: Mapped[list["Income"]] = relationship(back_populates="user", cascade="all, delete-orphan")
	budgets: Mapped[list["Budget"]] = relationship(back_populates="user", cascade="all, delete-orphan")
	transfers: Mapped[list["AccountTransfer"]] = relationship(back_populates="user", cascade="all, delete-orphan")
	assets: Mapped[list["Asset"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class AccountBalance(Base):
	__tablename__ = "account_balances"
	__table_args__ = (Index("ix_account_balances_user_name_type", "user_id", "name", "type"),)

	id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
	user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
	name: Mapped[str] = mapped_column(String(100), nullable=False)
	type: Mapped[str] = mapped_column(String(20), nullable=False)  # cash | bank | ewallet
	balance: Mapped[Decimal] = mapped_column(money(), nullable=False, default=0)
	created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

	user: Mapped["User"] = relationship(back_populates="accounts")


class Budget(Base):
	__tablename__ = "budgets"
	__table_args__ = (Index("ix_budgets_user_month_name", "user_id", "month", "name"),)

	id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
	user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
	name: Mapped[str] = mapped_column(String(100), nullable=False)
	category: Mapped[Optional[str]] = mapped_column(String(50))
	limit: Mapped[Decimal] = mapped_column(money(), nullable=False)
	month: Mapped[date] = mapped_column(Date, nullable=False)  # always the 1st of the month
	notes: Mapped[Optional[str]] = mapped_column(Text)
	created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

	user: Mapped["User"] = relationship(back_populates="budgets")
	expenses: Mapped[list["Expense"]] = relationship(back_populates="budget")


class Expense(Base):
	__tablename__ = "expenses"
	__table_args__ = (
		Index("ix_expenses_user_date", "user_id", "date"),
		Index("ix_expenses_user_category", "user_id", "category"),
	)

	id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
	user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
	account_id: Mapped[int] = mapped_column(ForeignKey("account_balances.id"), index=True)
	budget_id: Mapped[Optional[int]] = mapped_column(ForeignKey("budgets.id", ondelete="SET NULL"), index=True)

	title: Mapped[str] = mapped_column(String(200), nullable=False)
	amount: Mapped[Decimal] = mapped_column(money(), nullable=False)  # positive; debits the account
	category: Mapped[Optional[str]] = mapped_column(String(50))
	description: Mapped[Optional[str]] = mapped_column(Text)
	photo_url: Mapped[Optional[str]] = mapped_column(String(500))
	date: Mapped[date] = mapped_column(Date, nullable=False)
	created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

	user: Mapped["User"] = relationship(back_populates="expenses")
	account: Mapped["AccountBalance"] = relationship()
	budget: Mapped[Optional["Budget"]] = relationship(back_populates="expenses")


class Income(Base):
	__tablename__ = "incomes"
	__table_args__ = (Index("ix_incomes_user_date", "user_id", "date"),)

	id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
	user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
	account_id: Mapped[int] = mapped_column(ForeignKey("account_balances.id"), index=True)

	title: Mapped[str] = mapped_column(String(200), nullable=False)
	amount: Mapped[Decimal] = mapped_column(money(), nullable=False)  # positive; credits the account
	date: Mapped[date] = mapped_column(Date, nullable=False)
	created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

	user: Mapped["User"] = relationship(back_populates="incomes")
	account: Mapped["AccountBalance"] = relationship()


class AccountTransfer(Base):
	__tablename__ = "account_transfers"
	__table_args__ = (Index("ix_account_transfers_user_date", "user_id", "date"),)

	id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
	user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
	from_account_id: Mapped[int] = mapped_column(ForeignKey("account_balances.id"), index=True)
	to_account_id: Mapped[int] = mapped_column(ForeignKey("account_balances.id"), index=True)

	amount: Mapped[Decimal] = mapped_column(money(), nullable=False)
	note: Mapped[Optional[str]] = mapped_column(Text)
	date: Mapped[date] = mapped_column(Date, nullable=False)
	created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

	user: Mapped["User"] = relationship(back_populates="transfers")
	from_account: Mapped["AccountBalance"] = relationship(foreign_keys=[from_account_id])
	to_account: Mapped["AccountBalance"] = relationship(foreign_keys=[to_account_id])


class Asset(Base):
	__tablename__ = "assets"
	__table_args__ = (
		Index("ix_assets_user_type", "user_id", "type"),
		Index("ix_assets_user_created", "user_id", "created_at"),
	)

	id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
	user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

	name: Mapped[str] = mapped_column(String(100), nullable=False)
	type: Mapped[str] = mapped_column(String(30), nullable=False, default="stock")
	category: Mapped[str] = mapped_column(String(50), nullable=False, default="stock")
	color: Mapped[str] = mapped_column(String(50), nullable=False, default="bg-gray-500")
	amount: Mapped[float] = mapped_column(Numeric(18, 6, asdecimal=False), nullable=False)  # lots/units held
	buy_price: Mapped[float] = mapped_column(Numeric(18, 4, asdecimal=False), nullable=False)
	coin_id: Mapped[Optional[str]] = mapped_column(String(100))

	# Canvas layout
	position_x: Mapped[Optional[float]] = mapped_column(Float)
	position_y: Mapped[Optional[float]] = mapped_column(Float)
	created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

	user: Mapped["User"] = relationship(back_populates="assets")
