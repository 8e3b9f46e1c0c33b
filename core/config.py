"""
Environment-driven settings and logging setup.
"""

from __future__ import annotations

import logging
import logging.config
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Tuple

ENV_PREFIX = "CSV_ANALYZER_"
PROJECT_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CHUNK_SIZE = 50_000
DEFAULT_CACHE_TTL_DAYS = 7
MAX_FILE_BYTES = 2 * 1024 * 1024 * 1024
DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


def _get_int_env(name: str, default: int) -> int:
    raw_value = os.getenv(ENV_PREFIX + name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    value = os.getenv(ENV_PREFIX + name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for parsing, caching, and the HTTP surface.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    cache_dir: Path = PROJECT_ROOT / ".cache" / "csv_analysis"
    cache_ttl_days: int = DEFAULT_CACHE_TTL_DAYS
    max_file_bytes: int = MAX_FILE_BYTES
    log_level: str = "INFO"
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached settings read from ``CSV_ANALYZER_*`` environment variables.
    """

    origins = _get_str_env("CORS_ORIGINS", ",".join(DEFAULT_CORS_ORIGINS))
    cache_dir = _get_str_env("CACHE_DIR", str(PROJECT_ROOT / ".cache" / "csv_analysis"))
    return Settings(
        chunk_size=max(1, _get_int_env("CHUNK_SIZE", DEFAULT_CHUNK_SIZE)),
        cache_dir=Path(cache_dir),
        cache_ttl_days=max(0, _get_int_env("CACHE_TTL_DAYS", DEFAULT_CACHE_TTL_DAYS)),
        max_file_bytes=max(1, _get_int_env("MAX_FILE_BYTES", MAX_FILE_BYTES)),
        log_level=_get_str_env("LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
    )


def configure_logging(level: str | None = None) -> None:
    level = level or get_settings().log_level
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {"level": level, "handlers": ["console"]},
        }
    )
