from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/kanban.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - SECRET_KEY: key used to sign access tokens (random per process when unset)
    - JWT_ALGORITHM: token signing algorithm. Default 'HS256'
    - TOKEN_TTL_HOURS: lifetime of issued tokens in hours. Default 24
    - PASSWORD_HASH_ROUNDS: bcrypt cost factor. Default 12
    - LOG_LEVEL: root log level. Default 'INFO'
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    secret_key: str
    jwt_algorithm: str = "HS256"
    token_ttl: timedelta = timedelta(hours=24)
    password_hash_rounds: int = 12
    log_level: str = "INFO"


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from the environment (and .env, if present)."""
    load_dotenv()

    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/kanban.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    secret_key = os.getenv("SECRET_KEY")
    if not secret_key:
        logger.warning("SECRET_KEY is not set; using a random key, tokens will not survive a restart")
        secret_key = secrets.token_urlsafe(32)

    ttl_hours = _parse_int(_get_env("TOKEN_TTL_HOURS", "24"), 24)
    rounds = _parse_int(_get_env("PASSWORD_HASH_ROUNDS", "12"), 12)

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        secret_key=secret_key,
        jwt_algorithm=_get_env("JWT_ALGORITHM", "HS256").strip(),
        token_ttl=timedelta(hours=ttl_hours),
        password_hash_rounds=rounds,
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
    )
