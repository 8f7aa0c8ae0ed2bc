# archeohub/config.py
from functools import lru_cache
from pathlib import Path
import os
import sys

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel

# Project root
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env at the root
load_dotenv(BASE_DIR / ".env")

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_BING_ENDPOINT = "https://api.bing.microsoft.com/v7.0/search"

COMPLETION_TIMEOUT_SECONDS = 30.0
SEARCH_TIMEOUT_SECONDS = 10.0
MAX_SOURCES = 4


class Settings(BaseModel):
    openai_api_key: str = ""
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    bing_api_key: str = ""
    bing_endpoint: str = DEFAULT_BING_ENDPOINT
    frontend_origin: str = "*"
    app_env: str = "production"
    log_level: str = "INFO"
    completion_timeout: float = COMPLETION_TIMEOUT_SECONDS
    search_timeout: float = SEARCH_TIMEOUT_SECONDS

    @property
    def is_development(self) -> bool:
        return self.app_env.strip().lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
            openai_base_url=os.getenv("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL,
            bing_api_key=os.getenv("BING_API_KEY", ""),
            bing_endpoint=os.getenv("BING_ENDPOINT") or DEFAULT_BING_ENDPOINT,
            frontend_origin=os.getenv("FRONTEND_ORIGIN") or "*",
            app_env=os.getenv("APP_ENV", "production"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a single stderr sink at `level`."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} - {message}",
    )
