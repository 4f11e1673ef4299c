# universo/config.py
import logging
import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    env: str
    database_url: str
    token_ttl_seconds: int
    rate_limit_requests: int
    rate_limit_window_seconds: int
    default_per_page: int
    max_per_page: int
    log_level: str
    host: str
    port: int
    admin_password: str

    @property
    def is_production(self) -> bool:
        return self.env in ("prod", "production")


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got '{raw}'.")


def load_settings() -> Settings:
    """
    환경 변수(및 로컬 .env 파일)에서 설정을 읽어 Settings 객체를 생성합니다.
    """
    load_dotenv()
    settings = Settings(
        env=_getenv("UNIVERSO_ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///universo.db"),
        token_ttl_seconds=_getenv_int("TOKEN_TTL_SECONDS", 3600),
        rate_limit_requests=_getenv_int("RATE_LIMIT_REQUESTS", 100),
        rate_limit_window_seconds=_getenv_int("RATE_LIMIT_WINDOW_SECONDS", 60),
        default_per_page=_getenv_int("DEFAULT_PER_PAGE", 20),
        max_per_page=_getenv_int("MAX_PER_PAGE", 100),
        log_level=_getenv("LOG_LEVEL", "INFO"),
        host=_getenv("HOST", ""),
        port=_getenv_int("PORT", 8000),
        admin_password=_getenv("ADMIN_PASSWORD", "admin-change-me"),
    )
    if settings.is_production:
        if settings.database_url.startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if settings.admin_password == "admin-change-me":
            raise RuntimeError("ADMIN_PASSWORD must be set in production.")
    return settings


def configure_logging(level: str = "INFO") -> None:
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )
