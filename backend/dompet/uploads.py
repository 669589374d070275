from __future__ import annotations

import re
import time
from pathlib import Path

import structlog
from fastapi import UploadFile

logger = structlog.get_logger(__name__)

URL_PREFIX = "/uploads"
EXPENSE_DIR = "expenses"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str | None) -> str:
	base = Path(name or "photo").name
	return _UNSAFE.sub("-", base).strip("-.") or "photo"


async def save_expense_photo(upload_dir: Path, photo: UploadFile) -> str:
	"""Write the upload under ``<upload_dir>/expenses`` and return its public URL."""
	target_dir = Path(upload_dir) / EXPENSE_DIR
	target_dir.mkdir(parents=True, exist_ok=True)
	file_name = f"{int(time.time() * 1000)}-{safe_filename(photo.filename)}"
	data = await photo.read()
	(target_dir / file_name).write_bytes(data)
	logger.info("photo_saved", file_name=file_name, size=len(data))
	return f"{URL_PREFIX}/{EXPENSE_DIR}/{file_name}"


def delete_photo(upload_dir: Path, photo_url: str | None) -> None:
	if not photo_url or not photo_url.startswith(f"{URL_PREFIX}/"):
		return
	path = Path(upload_dir) / photo_url[len(URL_PREFIX) + 1:]
	try:
		path.unlink()
	except FileNotFoundError:
		logger.warning("photo_missing", photo_url=photo_url)
