"""PostgreSQL connection pool lifecycle for the credential store."""

import logging

import asyncpg

logger = logging.getLogger(__name__)

CREDENTIALS_SCHEMA = """
CREATE TABLE IF NOT EXISTS credentials (
    name        TEXT PRIMARY KEY,
    access      TEXT NOT NULL,
    refresh     TEXT,
    expires_at  TIMESTAMPTZ,
    obtained_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    subject_id  TEXT,
    login       TEXT,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


class DatabaseManager:
    """Manages PostgreSQL connection pool lifecycle"""

    def __init__(self, database_url: str, *, ssl: bool = False):
        self.database_url = database_url
        self.ssl = ssl
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Initialize the pool and make sure the credentials table exists"""
        if self._pool is not None:
            logger.warning("Database pool already initialized")
            return

        try:
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=1,
                max_size=3,
                timeout=30.0,
                command_timeout=30.0,
                ssl="require" if self.ssl else None,
                max_inactive_connection_lifetime=300.0,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(CREDENTIALS_SCHEMA)
            logger.info("Database pool created")
        except Exception as e:
            logger.exception(f"Failed to create database pool: {e}")
            raise

    async def disconnect(self) -> None:
        """Close database connection pool"""
        if self._pool is None:
            return

        try:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")
        except Exception as e:
            logger.exception(f"Error closing database pool: {e}")

    async def check_health(self) -> bool:
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=5.0) as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.warning(f"Database health check failed: {type(e).__name__}: {e}")
            return False

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the database connection pool"""
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call connect() first.")
        return self._pool
