"""
nl2sql_gateway/config.py

Configuration for the NL2SQL gateway.
"""
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Database config
USER_DB_URL = os.getenv("USER_DB_URL", "sqlite:///data/app.db")
HISTORY_DB_URL = os.getenv("HISTORY_DB_URL", "sqlite:///data/history.db")
EXEC_TIMEOUT_SECONDS = float(os.getenv("EXEC_TIMEOUT_SECONDS", "30"))

# LLM config
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "gemini")
GEMINI_API_KEY = os.getenv("GOOGLE_API_KEY")
MODEL_NAME = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
CF_ACCOUNT_ID = os.getenv("CF_ACCOUNT_ID")
CF_API_TOKEN = os.getenv("CF_API_TOKEN")
WORKERS_AI_MODEL = os.getenv("WORKERS_AI_MODEL", "@cf/meta/llama-3.1-8b-instruct-fast")
INFERENCE_TIMEOUT_SECONDS = float(os.getenv("INFERENCE_TIMEOUT_SECONDS", "60"))

# HTTP surface
ALLOWED_ORIGINS = tuple(
    o.strip()
    for o in os.getenv(
        "ALLOWED_ORIGINS",
        "https://cf-ai-query-assistant.pages.dev,http://localhost:3000",
    ).split(",")
    if o.strip()
)
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DEBUG = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    user_db_url: str = USER_DB_URL
    history_db_url: str = HISTORY_DB_URL
    exec_timeout_seconds: float = EXEC_TIMEOUT_SECONDS
    llm_provider: str = LLM_PROVIDER
    gemini_api_key: Optional[str] = GEMINI_API_KEY
    model_name: str = MODEL_NAME
    cf_account_id: Optional[str] = CF_ACCOUNT_ID
    cf_api_token: Optional[str] = CF_API_TOKEN
    workers_ai_model: str = WORKERS_AI_MODEL
    inference_timeout_seconds: float = INFERENCE_TIMEOUT_SECONDS
    allowed_origins: Tuple[str, ...] = ALLOWED_ORIGINS
    history_limit: int = HISTORY_LIMIT
    debug: bool = DEBUG


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, built once and shared read-only."""
    return Settings()


def configure_logging(level: str = LOG_LEVEL) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
