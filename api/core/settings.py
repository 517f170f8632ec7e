"""
Environment-driven settings.

Every accessor reads the environment on call so tests can monkeypatch
variables without reloading modules. Invalid values fall back to defaults.
"""

from __future__ import annotations

import os

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


def api_base() -> str:
    base = _env_str("API_BASE", "/api")
    if not base.startswith("/"):
        base = "/" + base
    return base.rstrip("/")


def host() -> str:
    return _env_str("API_HOST", "0.0.0.0")


def port() -> int:
    return _env_int("API_PORT", 8000)


def cors_origins() -> list[str]:
    raw = _env_str("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def log_level() -> str:
    return _env_str("LOG_LEVEL", "INFO").upper()


def pool_min_size() -> int:
    return max(_env_int("DB_POOL_MIN", 1), 1)


def pool_max_size() -> int:
    return max(_env_int("DB_POOL_MAX", 5), pool_min_size())


def command_timeout() -> int:
    return _env_int("DB_COMMAND_TIMEOUT", 30)


def lock_ttl_seconds() -> int:
    ttl = _env_int("LOCK_TTL_SECONDS", 300)
    return ttl if ttl > 0 else 300


def concurrency_protection_default() -> bool:
    return _env_bool("CONCURRENCY_PROTECTION", True)
