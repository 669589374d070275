from __future__ import annotations

from datetime import date as Date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer
from pydantic.alias_generators import to_camel

AccountType = Literal["cash", "bank", "ewallet"]

# Exact on input and storage, plain JSON number on output.
Money = Annotated[Decimal, Field(allow_inf_nan=False), PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
	"""Wire format is camelCase; snake_case field names are accepted on input too."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SuccessResponse(BaseModel):
	success: bool = True


# Auth
class RegisterRequest(CamelModel):
	name: Optional[str] = Field(default=None, max_length=100)
	email: Optional[EmailStr] = None
	password: Optional[str] = None


class LoginRequest(CamelModel):
	email: EmailStr
	password: str


class UserRead(CamelModel):
	id: int
	name: Optional[str]
	email: EmailStr
	created_at: datetime


class RegisterResponse(CamelModel):
	success: bool = True
	user: UserRead


# Accounts
class AccountWrite(CamelModel):
	name: Optional[str] = None
	type: Optional[AccountType] = None
	balance: Optional[Money] = None


class AccountRead(CamelModel):
	id: int
	name: str
	type: str
	balance: Money
	created_at: datetime


# Budgets
class BudgetWrite(CamelModel):
	name: Optional[str] = None
	limit: Optional[Money] = None
	category: Optional[str] = None
	notes: Optional[str] = None
	month: Optional[str] = Field(default=None, description="Month in YYYY-MM format.")


class BudgetRef(CamelModel):
	id: int
	name: str


class BudgetRead(CamelModel):
	id: int
	name: str
	category: Optional[str]
	limit: Money
	month: Date
	notes: Optional[str]
	created_at: datetime


class BudgetWithSpending(BudgetRead):
	spent: float
	remaining: float
	month_key: str


class BudgetList(CamelModel):
	month: str
	budgets: list[BudgetWithSpending]


# Expenses
class ExpenseRead(CamelModel):
	id: int
	title: str
	amount: Money
	category: Optional[str]
	description: Optional[str]
	photo_url: Optional[str]
	date: Date
	created_at: datetime
	account_id: int
	budget_id: Optional[int]


class ExpenseListItem(ExpenseRead):
	budget: Optional[BudgetRef] = None


class ExpenseSummary(CamelModel):
	total: float
	count: int
	average: float
	top_category: str
	category_totals: dict[str, float]


class CategoryOption(CamelModel):
	value: str
	label: str


# Incomes
class IncomeWrite(CamelModel):
	title: Optional[str] = None
	amount: Optional[Money] = None
	date: Optional[Date] = None
	account_id: Optional[int] = None


class IncomeRead(CamelModel):
	id: int
	title: str
	amount: Money
	date: Date
	created_at: datetime
	account_id: int


class IncomeListItem(IncomeRead):
	account: AccountRead


# Transfers
class TransferCreate(CamelModel):
	from_account_id: Optional[int] = None
	to_account_id: Optional[int] = None
	amount: Optional[Money] = None
	note: Optional[str] = None
	date: Optional[Date] = None


class TransferRead(CamelModel):
	id: int
	from_account_id: int
	to_account_id: int
	amount: Money
	note: Optional[str]
	date: Date
	created_at: datetime


class TransferListItem(TransferRead):
	from_account: AccountRead
	to_account: AccountRead


# Assets
class AssetCreate(CamelModel):
	name: str = Field(..., min_length=1, max_length=100)
	amount: float = Field(..., allow_inf_nan=False)
	buy_price: float = Field(..., allow_inf_nan=False)
	type: Optional[str] = None
	category: Optional[str] = None
	color: Optional[str] = None
	coin_id: Optional[str] = None


class AssetUpdate(CamelModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=100)
	amount: Optional[float] = Field(default=None, allow_inf_nan=False)
	buy_price: Optional[float] = Field(default=None, allow_inf_nan=False)
	type: Optional[str] = None
	category: Optional[str] = None
	color: Optional[str] = None
	coin_id: Optional[str] = None
	position_x: Optional[float] = Field(default=None, allow_inf_nan=False)
	position_y: Optional[float] = Field(default=None, allow_inf_nan=False)


class AssetRead(CamelModel):
	id: int
	name: str
	type: str
	category: str
	color: str
	amount: float
	buy_price: float
	coin_id: Optional[str]
	position_x: Optional[float]
	position_y: Optional[float]
	created_at: datetime


class PortfolioAsset(AssetRead):
	current_price: float
	value: float
	profit: float


class AllocationSlice(CamelModel):
	label: str
	value: float


class Portfolio(CamelModel):
	assets: list[PortfolioAsset]
	total_value: float
	total_cost: float
	total_profit: float
	profit_percentage: float
	allocation: list[AllocationSlice]


# Prices
class PriceRequest(CamelModel):
	coin_ids: Optional[list[str]] = None


# AI
class ChatRequest(CamelModel):
	message: Optional[str] = None
	model: Optional[str] = None


class ChatResponse(CamelModel):
	content: str


# Analytics
class CashflowPoint(CamelModel):
	date: Date
	income: float
	expense: float
	net: float
