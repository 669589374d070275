from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import Settings


class Base(DeclarativeBase):
	pass


def make_engine(database_url: str) -> AsyncEngine:
	engine = create_async_engine(database_url, echo=False, future=True)
	if engine.dialect.name == "sqlite":
		@event.listens_for(engine.sync_engine, "connect")
		def _enable_foreign_keys(dbapi_conn, _record):  # type: ignore[no-untyped-def]
			cursor = dbapi_conn.cursor()
			cursor.execute("PRAGMA foreign_keys=ON")
			cursor.close()
	return engine


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
	return async_sessionmaker(
		bind=engine,
		expire_on_commit=False,
		autoflush=False,
		class_=AsyncSession,
	)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
	async with request.app.state.sessionmaker() as session:
		yield session


def lifespan_for(settings: Settings):  # type: ignore[no-untyped-def]
	@asynccontextmanager
	async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]
		# Import models here to ensure metadata is available
		from . import models  # noqa: F401

		engine = make_engine(settings.database_url)
		async with engine.begin() as conn:
			await conn.run_sync(Base.metadata.create_all)
		app.state.engine = engine
		app.state.sessionmaker = make_sessionmaker(engine)
		# Expense photos are served from here
		settings.upload_dir.mkdir(parents=True, exist_ok=True)
		yield
		await engine.dispose()

	return lifespan
