"""
Database connection management.
Wraps a shared asyncpg pool and applies the bundled SQL migrations.
"""
import asyncio
import ssl
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import asyncpg
import structlog

from lottery_ingest.config import Settings, get_settings

logger = structlog.get_logger()

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class DatabaseNotConfiguredError(RuntimeError):
    """Raised when a database operation is attempted without DATABASE_URL."""


class DatabaseManager:
    """
    Manages the asyncpg connection pool.
    One instance per process, shared by the writer and the reader.
    """

    _instance: Optional["DatabaseManager"] = None
    _lock = asyncio.Lock()

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._pool: Optional[asyncpg.Pool] = None

    @classmethod
    async def get_instance(cls) -> "DatabaseManager":
        """Get or create singleton instance."""
        if cls._instance is None:
            async with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def is_configured(self) -> bool:
        return self.settings.database_configured

    async def get_pool(self) -> asyncpg.Pool:
        """Get or create the connection pool."""
        if not self.is_configured:
            raise DatabaseNotConfiguredError("DATABASE_URL not set")

        if self._pool is None:
            ssl_context = None
            if self.settings.database_requires_ssl:
                ssl_context = ssl.create_default_context()
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

            self._pool = await asyncpg.create_pool(
                dsn=self.settings.database_url,
                ssl=ssl_context,
                min_size=self.settings.db_pool_min_size,
                max_size=self.settings.db_pool_max_size,
                max_inactive_connection_lifetime=300,
                command_timeout=60,
                timeout=30,
            )
            logger.info("Created asyncpg connection pool")

        return self._pool

    @asynccontextmanager
    async def asyncpg_connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Context manager for a pooled connection."""
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            yield conn

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.asyncpg_connection() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Closed asyncpg pool")


async def get_db() -> DatabaseManager:
    """Get database manager instance."""
    return await DatabaseManager.get_instance()


async def run_migrations(db: Optional[DatabaseManager] = None) -> list[str]:
    """
    Apply pending migrations from the package's migrations directory.

    Returns:
        Filenames applied during this call
    """
    db = db or await get_db()
    applied_now: list[str] = []

    async with db.asyncpg_connection() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id SERIAL PRIMARY KEY,
                filename TEXT UNIQUE NOT NULL,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
        """)

        applied = await conn.fetch("SELECT filename FROM _migrations")
        applied_set = {row["filename"] for row in applied}

        for migration_file in sorted(MIGRATIONS_DIR.glob("*.sql")):
            if migration_file.name in applied_set:
                continue

            logger.info("Applying migration", filename=migration_file.name)

            async with conn.transaction():
                await conn.execute(migration_file.read_text(encoding="utf-8"))
                await conn.execute(
                    "INSERT INTO _migrations (filename) VALUES ($1)",
                    migration_file.name,
                )

            applied_now.append(migration_file.name)
            logger.info("Applied migration", filename=migration_file.name)

    return applied_now
