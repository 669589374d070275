from __future__ import annotations

from typing import List

import structlog
from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, Response, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.sessions import SessionMiddleware

from . import ai, analytics, auth, crud, export, market, schemas, uploads
from .auth import current_user_id
from .config import Settings, get_settings
from .dates import month_range, parse_date
from .db import get_session, lifespan_for
from .errors import DompetError, QuotaExceededError, ServiceUnavailableError
from .log import configure_logging

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api")


def get_app_settings(request: Request) -> Settings:
	return request.app.state.settings


def _form_int(value: str | None) -> int | None:
	if value is None or value.strip() == "":
		return None
	try:
		return int(value)
	except ValueError as exc:
		raise DompetError("Input tidak valid") from exc


def _form_date(value: str | None):  # type: ignore[no-untyped-def]
	try:
		return parse_date(value)
	except ValueError as exc:
		raise DompetError("Tanggal tidak valid") from exc


# Auth
@router.post("/auth/register", response_model=schemas.RegisterResponse, tags=["Auth"], summary="Register")
async def register(
	payload: schemas.RegisterRequest,
	session: AsyncSession = Depends(get_session),
	settings: Settings = Depends(get_app_settings),
):
	if not payload.email or not payload.password:
		raise DompetError("Email & password wajib")
	if await crud.get_user_by_email(session, payload.email) is not None:
		raise DompetError("Email sudah terdaftar")
	password_hash = await auth.hash_password(payload.password, settings.bcrypt_rounds)
	user = await crud.create_user(session, payload.name, payload.email, password_hash)
	logger.info("user_registered", user_id=user.id)
	return {"success": True, "user": user}


@router.post("/auth/login", response_model=schemas.UserRead, tags=["Auth"], summary="Login")
async def login(request: Request, payload: schemas.LoginRequest, session: AsyncSession = Depends(get_session)):
	user = await crud.get_user_by_email(session, payload.email)
	if user is None or not await auth.verify_password(payload.password, user.password_hash):
		logger.info("login_failed", email=payload.email)
		raise DompetError("Email atau password salah", status_code=401)
	auth.login(request, user.id)
	return user


@router.post("/auth/logout", response_model=schemas.SuccessResponse, tags=["Auth"], summary="Logout")
async def logout(request: Request):
	auth.logout(request)
	return {"success": True}


@router.get("/auth/me", response_model=schemas.UserRead, tags=["Auth"], summary="Current User")
async def me(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	return await crud.get_user(session, user_id)


# Account balances
@router.get("/account-balance", response_model=List[schemas.AccountRead], tags=["Accounts"], summary="List Accounts")
async def list_accounts(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	return await crud.list_accounts(session, user_id)


@router.post("/account-balance", response_model=schemas.AccountRead, tags=["Accounts"], summary="Create Account")
async def create_account(
	payload: schemas.AccountWrite,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.create_account(session, user_id, name=payload.name, type_=payload.type, balance=payload.balance)


@router.put("/account-balance/{account_id}", response_model=schemas.AccountRead, tags=["Accounts"], summary="Update Account")
async def update_account(
	account_id: int,
	payload: schemas.AccountWrite,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.update_account(
		session, user_id, account_id, name=payload.name, type_=payload.type, balance=payload.balance
	)


@router.delete("/account-balance/{account_id}", response_model=schemas.SuccessResponse, tags=["Accounts"], summary="Delete Account")
async def delete_account(account_id: int, user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	await crud.delete_account(session, user_id, account_id)
	return {"success": True}


# Expenses
@router.get("/categories", response_model=List[schemas.CategoryOption], tags=["Expenses"], summary="Expense Categories")
async def categories():
	return analytics.EXPENSE_CATEGORIES


@router.get("/expenses", response_model=List[schemas.ExpenseListItem], tags=["Expenses"], summary="List Expenses")
async def list_expenses(
	category: str | None = None,
	start_date: str | None = Query(None, alias="startDate"),
	end_date: str | None = Query(None, alias="endDate"),
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.list_expenses(
		session,
		user_id,
		category=category,
		start=_form_date(start_date) if start_date else None,
		end=_form_date(end_date) if end_date else None,
	)


@router.get("/expenses/export", tags=["Expenses"], summary="Export Expenses")
async def export_expenses(
	month: str | None = None,
	category: str | None = None,
	start_date: str | None = Query(None, alias="startDate"),
	end_date: str | None = Query(None, alias="endDate"),
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	start, end = month_range(crud.parse_month(month))
	items = await crud.list_expenses(session, user_id, category=category, start=start, end=end, end_exclusive=True)
	# Explicit dates narrow the month window further.
	if start_date:
		first = _form_date(start_date)
		items = [e for e in items if e.date >= first]
	if end_date:
		last = _form_date(end_date)
		items = [e for e in items if e.date <= last]
	logger.info("expenses_exported", user_id=user_id, rows=len(items))
	return Response(
		content=export.expenses_workbook(items),
		media_type=export.XLSX_MEDIA_TYPE,
		headers={"Content-Disposition": "attachment; filename=expenses.xlsx"},
	)


@router.get("/expenses/summary", response_model=schemas.ExpenseSummary, tags=["Expenses"], summary="Expense Summary")
async def expense_summary(
	month: str | None = None,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	start, end = month_range(crud.parse_month(month))
	items = await crud.list_expenses(session, user_id, start=start, end=end, end_exclusive=True)
	return analytics.expense_summary((e.amount, e.category) for e in items)


@router.post("/expenses", response_model=schemas.ExpenseRead, tags=["Expenses"], summary="Create Expense")
async def create_expense(
	title: str | None = Form(None),
	amount: str | None = Form(None),
	category: str | None = Form(None),
	description: str | None = Form(None),
	date: str | None = Form(None),
	account_id: str | None = Form(None, alias="accountId"),
	budget_id: str | None = Form(None, alias="budgetId"),
	photo: UploadFile | None = File(None),
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
	settings: Settings = Depends(get_app_settings),
):
	parsed_account_id = _form_int(account_id)
	if parsed_account_id is None:
		raise DompetError("Account required")
	photo_url = None
	if photo is not None and photo.filename:
		photo_url = await uploads.save_expense_photo(settings.upload_dir, photo)
	try:
		return await crud.create_expense(
			session,
			user_id,
			title=title,
			amount=amount,
			category=category,
			description=description,
			date_=_form_date(date),
			account_id=parsed_account_id,
			budget_id=_form_int(budget_id),
			photo_url=photo_url,
		)
	except DompetError:
		uploads.delete_photo(settings.upload_dir, photo_url)
		raise


@router.put("/expenses/{expense_id}", response_model=schemas.ExpenseRead, tags=["Expenses"], summary="Update Expense")
async def update_expense(
	expense_id: int,
	title: str | None = Form(None),
	amount: str | None = Form(None),
	category: str | None = Form(None),
	description: str | None = Form(None),
	date: str | None = Form(None),
	account_id: str | None = Form(None, alias="accountId"),
	budget_id: str | None = Form(None, alias="budgetId"),
	remove_photo: str | None = Form(None, alias="removePhoto"),
	photo: UploadFile | None = File(None),
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
	settings: Settings = Depends(get_app_settings),
):
	existing = await crud.get_expense(session, user_id, expense_id)
	old_photo = existing.photo_url

	photo_url = crud.KEEP
	if remove_photo == "true":
		photo_url = None
	if photo is not None and photo.filename:
		photo_url = await uploads.save_expense_photo(settings.upload_dir, photo)

	try:
		updated = await crud.update_expense(
			session,
			user_id,
			expense_id,
			title=title,
			amount=amount,
			category=category,
			description=description,
			date_=_form_date(date) if date else None,
			account_id=_form_int(account_id),
			budget_id=crud.KEEP if budget_id is None else _form_int(budget_id),
			photo_url=photo_url,
		)
	except DompetError:
		if isinstance(photo_url, str):
			uploads.delete_photo(settings.upload_dir, photo_url)
		raise

	if photo_url is not crud.KEEP and old_photo and old_photo != photo_url:
		uploads.delete_photo(settings.upload_dir, old_photo)
	return updated


@router.delete("/expenses/{expense_id}", response_model=schemas.SuccessResponse, tags=["Expenses"], summary="Delete Expense")
async def delete_expense(
	expense_id: int,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
	settings: Settings = Depends(get_app_settings),
):
	expense = await crud.delete_expense(session, user_id, expense_id)
	uploads.delete_photo(settings.upload_dir, expense.photo_url)
	return {"success": True}


# Incomes
@router.get("/income", response_model=List[schemas.IncomeListItem], tags=["Incomes"], summary="List Incomes")
async def list_incomes(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	return await crud.list_incomes(session, user_id)


@router.post("/income", response_model=schemas.IncomeRead, tags=["Incomes"], summary="Create Income")
async def create_income(
	payload: schemas.IncomeWrite,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.create_income(
		session,
		user_id,
		title=payload.title,
		amount=payload.amount,
		date_=parse_date(payload.date),
		account_id=payload.account_id,
	)


@router.put("/income/{income_id}", response_model=schemas.IncomeRead, tags=["Incomes"], summary="Update Income")
async def update_income(
	income_id: int,
	payload: schemas.IncomeWrite,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.update_income(
		session,
		user_id,
		income_id,
		title=payload.title,
		amount=payload.amount,
		date_=payload.date,
		account_id=payload.account_id,
	)


@router.delete("/income/{income_id}", response_model=schemas.SuccessResponse, tags=["Incomes"], summary="Delete Income")
async def delete_income(income_id: int, user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	await crud.delete_income(session, user_id, income_id)
	return {"success": True}


# Transfers
@router.get("/transfers", response_model=List[schemas.TransferListItem], tags=["Transfers"], summary="List Transfers")
async def list_transfers(
	month: str | None = None,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	start, end = month_range(crud.parse_month(month))
	return await crud.list_transfers(session, user_id, start=start, end=end)


@router.post("/transfers", response_model=schemas.TransferRead, status_code=201, tags=["Transfers"], summary="Create Transfer")
async def create_transfer(
	payload: schemas.TransferCreate,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.create_transfer(
		session,
		user_id,
		from_account_id=payload.from_account_id,
		to_account_id=payload.to_account_id,
		amount=payload.amount,
		note=payload.note,
		date_=parse_date(payload.date),
	)


@router.delete("/transfers/{transfer_id}", response_model=schemas.SuccessResponse, tags=["Transfers"], summary="Delete Transfer")
async def delete_transfer(transfer_id: int, user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	await crud.delete_transfer(session, user_id, transfer_id)
	return {"success": True}


# Budgets
@router.get("/budgets", response_model=schemas.BudgetList, tags=["Budgets"], summary="List Budgets")
async def list_budgets(
	month: str | None = None,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.list_budgets(session, user_id, crud.parse_month(month))


@router.post("/budgets", response_model=schemas.BudgetRead, status_code=201, tags=["Budgets"], summary="Create Budget")
async def create_budget(
	payload: schemas.BudgetWrite,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.create_budget(
		session,
		user_id,
		name=payload.name,
		limit=payload.limit,
		category=payload.category,
		notes=payload.notes,
		month=payload.month,
	)


@router.put("/budgets/{budget_id}", response_model=schemas.BudgetRead, tags=["Budgets"], summary="Update Budget")
async def update_budget(
	budget_id: int,
	payload: schemas.BudgetWrite,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.update_budget(
		session,
		user_id,
		budget_id,
		name=payload.name,
		limit=payload.limit,
		category=payload.category,
		notes=payload.notes,
		month=payload.month,
	)


@router.delete("/budgets/{budget_id}", response_model=schemas.SuccessResponse, tags=["Budgets"], summary="Delete Budget")
async def delete_budget(budget_id: int, user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	await crud.delete_budget(session, user_id, budget_id)
	return {"success": True}


# Assets
@router.get("/assets", response_model=List[schemas.AssetRead], tags=["Assets"], summary="List Assets")
async def list_assets(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	return await crud.list_assets(session, user_id)


@router.get("/assets/portfolio", response_model=schemas.Portfolio, tags=["Assets"], summary="Portfolio")
async def portfolio(
	request: Request,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
	settings: Settings = Depends(get_app_settings),
):
	assets = await crud.list_assets(session, user_id)
	coin_ids = sorted({a.coin_id for a in assets if a.coin_id})
	prices = await market.get_idr_prices(
		coin_ids,
		request.app.state.price_cache,
		base_url=settings.coingecko_url,
		timeout=settings.http_timeout_seconds,
	)
	return analytics.portfolio(assets, prices)


@router.post("/assets", response_model=schemas.AssetRead, tags=["Assets"], summary="Create Asset")
async def create_asset(
	payload: schemas.AssetCreate,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	return await crud.create_asset(
		session,
		user_id,
		name=payload.name,
		amount=payload.amount,
		buy_price=payload.buy_price,
		type_=payload.type,
		category=payload.category,
		color=payload.color,
		coin_id=payload.coin_id,
	)


@router.put("/assets/{asset_id}", response_model=schemas.AssetRead, tags=["Assets"], summary="Update Asset")
async def update_asset(
	asset_id: int,
	payload: schemas.AssetUpdate,
	user_id: int = Depends(current_user_id),
	session: AsyncSession = Depends(get_session),
):
	changes = payload.model_dump(include=payload.model_fields_set)
	return await crud.update_asset(session, user_id, asset_id, changes)


@router.delete("/assets/{asset_id}", response_model=schemas.SuccessResponse, tags=["Assets"], summary="Delete Asset")
async def delete_asset(asset_id: int, user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	await crud.delete_asset(session, user_id, asset_id)
	return {"success": True}


# Prices
@router.post("/price", tags=["Prices"], summary="Coin Prices")
async def prices(payload: schemas.PriceRequest, request: Request, settings: Settings = Depends(get_app_settings)):
	return await market.get_prices(
		payload.coin_ids or [],
		request.app.state.price_cache,
		base_url=settings.coingecko_url,
		timeout=settings.http_timeout_seconds,
	)


# AI assistant
@router.post("/ai-context-chat", response_model=schemas.ChatResponse, tags=["AI"], summary="Context Chat")
async def ai_context_chat(
	payload: schemas.ChatRequest,
	request: Request,
	session: AsyncSession = Depends(get_session),
	settings: Settings = Depends(get_app_settings),
):
	if not settings.openrouter_api_key:
		raise ServiceUnavailableError("OpenRouter API key missing")
	user_id = await current_user_id(request, session)

	if not request.app.state.ai_limiter.hit(str(user_id)):
		logger.info("ai_quota_exceeded", user_id=user_id)
		raise QuotaExceededError("Daily AI quota reached. Coba lagi besok.")
	if not payload.message:
		raise DompetError("Message diperlukan")
	model = payload.model or settings.ai_models[0]
	if model not in settings.ai_models:
		raise DompetError("Model tidak diizinkan")

	context = await ai.build_user_context(session, user_id)
	content = await ai.request_completion(settings, model=model, context=context, message=payload.message)
	return {"content": content}


# Analytics
@router.get("/cashflow", response_model=List[schemas.CashflowPoint], tags=["Analytics"], summary="Cashflow")
async def cashflow(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
	monthly = await crud.monthly_totals(session, user_id)
	return analytics.cashflow_points(monthly)


def create_app(settings: Settings | None = None) -> FastAPI:
	settings = settings or get_settings()
	configure_logging(settings.log_level, settings.log_json)

	app = FastAPI(lifespan=lifespan_for(settings), title="Dompet API", version="0.1.0")
	app.state.settings = settings
	app.state.price_cache = market.PriceCache(settings.price_cache_ttl_seconds, settings.price_cache_max_entries)
	app.state.ai_limiter = ai.DailyRateLimiter(settings.ai_daily_limit)

	app.add_middleware(
		SessionMiddleware,
		secret_key=settings.secret_key,
		session_cookie=settings.session_cookie,
		same_site="lax",
	)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=settings.cors_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	@app.exception_handler(DompetError)
	async def dompet_error_handler(request: Request, exc: DompetError):
		return JSONResponse({"error": exc.message}, status_code=exc.status_code)

	@app.exception_handler(RequestValidationError)
	async def validation_error_handler(request: Request, exc: RequestValidationError):
		# Rejected inputs are not echoed back; NaN is not valid JSON.
		detail = [{k: v for k, v in err.items() if k != "input"} for err in exc.errors()]
		return JSONResponse({"error": "Input tidak valid", "detail": jsonable_encoder(detail)}, status_code=400)

	@app.exception_handler(Exception)
	async def unhandled_error_handler(request: Request, exc: Exception):
		logger.exception("unhandled_error", path=request.url.path)
		return JSONResponse({"error": "Terjadi kesalahan pada server"}, status_code=500)

	app.include_router(router)

	app.mount(uploads.URL_PREFIX, StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

	@app.get("/")
	async def root():
		return {"status": "ok", "service": "Dompet API"}

	return app


app = create_app()
