from __future__ import annotations

import bcrypt
from fastapi import Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud
from .db import get_session
from .errors import UnauthorizedError

SESSION_USER_KEY = "user_id"


async def hash_password(password: str, rounds: int) -> str:
	hashed = await run_in_threadpool(bcrypt.hashpw, password.encode("utf-8"), bcrypt.gensalt(rounds))
	return hashed.decode("utf-8")


async def verify_password(password: str, hashed: str) -> bool:
	return await run_in_threadpool(bcrypt.checkpw, password.encode("utf-8"), hashed.encode("utf-8"))


def login(request: Request, user_id: int) -> None:
	request.session.clear()
	request.session[SESSION_USER_KEY] = user_id


def logout(request: Request) -> None:
	request.session.clear()


async def current_user_id(request: Request, session: AsyncSession = Depends(get_session)) -> int:
	user_id = request.session.get(SESSION_USER_KEY)
	if user_id is None or await crud.get_user(session, user_id) is None:
		raise UnauthorizedError()
	return user_id
