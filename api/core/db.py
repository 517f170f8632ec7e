"""
Async database access helpers (raw SQL) using asyncpg.

This module owns the connection pool. FastAPI initializes it on startup and
closes it on shutdown (see `api/main.py`).

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import logging
import os
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import settings

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    _pool = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=settings.pool_min_size(),
        max_size=settings.pool_max_size(),
        command_timeout=settings.command_timeout(),
    )
    logger.info("db_pool_opened min=%s max=%s", settings.pool_min_size(), settings.pool_max_size())


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None
    logger.info("db_pool_closed")


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


def affected_rows(command_tag: str) -> int:
    """
    Parse the row count out of a status tag such as "UPDATE 3" or "DELETE 0".
    """
    try:
        return int((command_tag or "").rsplit(" ", 1)[-1])
    except ValueError:
        return 0


async def fetch_one(sql: str, *args: Any, conn: asyncpg.Connection | None = None) -> dict[str, Any] | None:
    """
    Run a query and return a single row as a dict (or None).
    """
    # takes sql query and the positional arguments
    row = await (conn or pool()).fetchrow(sql, *args)
    return _record_to_dict(row) if row is not None else None


async def fetch_all(sql: str, *args: Any, conn: asyncpg.Connection | None = None) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    rows = await (conn or pool()).fetch(sql, *args)
    return [_record_to_dict(r) for r in rows]


async def execute(sql: str, *args: Any, conn: asyncpg.Connection | None = None) -> int:
    """
    Run a statement (INSERT/UPDATE/DELETE/DDL) and return the affected row count.
    """
    tag = await (conn or pool()).execute(sql, *args)
    return affected_rows(tag)
