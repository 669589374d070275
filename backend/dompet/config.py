from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_AI_MODELS = [
	"deepseek/deepseek-r1-0528",
	"deepseek/deepseek-v3",
	"meta-llama/llama-4-maverick",
	"mistralai/mistral-small-3.2-24b-instruct",
]


class Settings(BaseSettings):
	"""Application settings, read from ``DOMPET_*`` environment variables and ``.env``."""

	model_config = SettingsConfigDict(
		env_prefix="DOMPET_",
		env_file=".env",
		env_file_encoding="utf-8",
		extra="ignore",
	)

	database_url: str = "sqlite+aiosqlite:///./dompet.db"
	secret_key: str = "dev-secret-key-change-me"
	session_cookie: str = "dompet_session"
	upload_dir: Path = Path("./uploads")
	bcrypt_rounds: int = Field(default=10, ge=4, le=31)

	# AI assistant (OpenRouter, OpenAI-compatible)
	openrouter_api_key: str | None = None
	openrouter_base_url: str = "https://openrouter.ai/api/v1"
	app_url: str = "http://localhost:8000"
	ai_daily_limit: int = Field(default=20, ge=1)
	ai_models: list[str] = Field(default_factory=lambda: list(DEFAULT_AI_MODELS))

	# Crypto prices
	coingecko_url: str = "https://api.coingecko.com/api/v3"
	price_cache_ttl_seconds: float = Field(default=60.0, gt=0)
	price_cache_max_entries: int = Field(default=256, ge=1)
	http_timeout_seconds: float = Field(default=10.0, gt=0)

	cors_origins: list[str] = Field(default_factory=lambda: ["*"])
	log_level: str = "INFO"
	log_json: bool = True


@lru_cache
def get_settings() -> Settings:
	return Settings()
