from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _env_str(name: str, default: str, *aliases: str) -> str:
    for key in (name, *aliases):
        raw = os.getenv(key)
        if raw is not None and raw.strip():
            return raw.strip()
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Process configuration read from the environment (and `.env`)."""

    database_url: str = ""
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10
    db_command_timeout: float = 30.0
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    widget_data_request_delay_ms: int = 100
    placeholder_image_base: str = "https://via.placeholder.com"
    widget_accessible: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        min_size = max(1, _env_int("DB_POOL_MIN_SIZE", 1))
        return cls(
            database_url=_env_str("DATABASE_URL", "", "SUPABASE_DB_URL"),
            db_pool_min_size=min_size,
            db_pool_max_size=max(min_size, _env_int("DB_POOL_MAX_SIZE", 10)),
            db_command_timeout=max(1.0, _env_float("DB_COMMAND_TIMEOUT_SEC", 30.0)),
            host=_env_str("HOST", "0.0.0.0"),
            port=_env_int("PORT", 8000),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
            widget_data_request_delay_ms=max(0, _env_int("WIDGET_DATA_REQUEST_DELAY_MS", 100)),
            placeholder_image_base=_env_str("PLACEHOLDER_IMAGE_BASE", "https://via.placeholder.com").rstrip("/"),
            widget_accessible=_env_bool("WIDGET_ACCESSIBLE", True),
        )


def load_settings(dotenv: bool = True) -> Settings:
    if dotenv:
        load_dotenv()
    return Settings.from_env()


__all__ = ["Settings", "load_settings"]
