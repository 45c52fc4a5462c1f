"""Async PostgreSQL connection pool backing the metadata store.

The pool is created lazily on first use and closed by the app lifespan.
``connection()`` hands out a pooled connection; every statement the
metadata store issues is a single-row write or a single query, so no
explicit transaction is opened.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import asyncpg

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


class DatabaseConfig:
    """Builds the DSN based on the detected environment."""

    @staticmethod
    def get_connection_string() -> str:
        # Priority 1: Explicit override
        if url := os.environ.get("DATABASE_URL"):
            return url

        # Priority 2: Cloud Run -> managed AlloyDB
        if os.environ.get("K_SERVICE") or os.environ.get("CLOUD_RUN_JOB"):
            host = os.environ.get("ALLOYDB_HOST")
            db = os.environ.get("ALLOYDB_DB", "lifecycle")
            user = os.environ.get("ALLOYDB_USER", "lifecycle")
            password = os.environ.get("ALLOYDB_PASSWORD", "")
            return f"postgresql://{user}:{password}@{host}/{db}"

        # Priority 3: Local dev
        sslmode = os.environ.get("DB_SSLMODE", "disable")
        return (
            f"postgresql://{os.environ.get('DB_USER', 'lifecycle')}:"
            f"{os.environ.get('DB_PASSWORD', 'lifecycle')}@"
            f"{os.environ.get('DB_HOST', 'localhost')}:"
            f"{os.environ.get('DB_PORT', '5432')}/"
            f"{os.environ.get('DB_NAME', 'lifecycle')}?sslmode={sslmode}"
        )


async def get_pool() -> asyncpg.Pool:
    """Return the process-wide pool, creating it on first call."""
    global _pool  # noqa: PLW0603
    if _pool is None:
        dsn = DatabaseConfig.get_connection_string()
        logger.info("Creating database pool (host hidden for security)")
        _pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=1,
            max_size=int(os.environ.get("DB_POOL_MAX", "10")),
            command_timeout=30,
        )
    return _pool


async def close_pool() -> None:
    global _pool  # noqa: PLW0603
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


async def check_db_connection() -> bool:
    """Health check: True if the database answers ``SELECT 1``."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return True
    except Exception:
        logger.exception("Database health check failed")
        return False


@asynccontextmanager
async def connection() -> AsyncIterator[asyncpg.Connection]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn
