import asyncio
import ssl
from typing import Optional

import asyncpg
import structlog

from agent.errors import DatabaseUnavailableError
from services.config import settings

logger = structlog.get_logger()


def _relaxed_ssl_context() -> ssl.SSLContext:
    """TLS without CA verification, for poolers that present self-signed chains."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class DatabasePool:
    """
    Process-wide asyncpg pool for the market data database.
    Created lazily on first use and closed only on application shutdown.
    """

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn or settings.database_url
        self._pool: Optional[asyncpg.Pool] = None
        self._lock = asyncio.Lock()

    async def get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._lock:
            if self._pool is None:
                logger.info(
                    "Creating database pool",
                    min_size=settings.db_pool_min_size,
                    max_size=settings.db_pool_max_size
                )
                try:
                    self._pool = await asyncpg.create_pool(
                        dsn=self.dsn,
                        min_size=settings.db_pool_min_size,
                        max_size=settings.db_pool_max_size,
                        timeout=settings.db_connect_timeout_seconds,
                        max_inactive_connection_lifetime=settings.db_idle_timeout_seconds,
                        ssl=_relaxed_ssl_context() if settings.db_ssl else None,
                        server_settings={"application_name": settings.db_application_name},
                    )
                except Exception as e:
                    logger.error("Database pool creation failed", error=str(e), error_type=type(e).__name__)
                    raise DatabaseUnavailableError(str(e)) from e
        return self._pool

    async def acquire(self) -> asyncpg.Connection:
        pool = await self.get_pool()
        try:
            return await pool.acquire(timeout=settings.db_connect_timeout_seconds)
        except Exception as e:
            logger.error("Database connection acquisition failed", error=str(e), error_type=type(e).__name__)
            raise DatabaseUnavailableError(str(e)) from e

    async def release(self, conn: asyncpg.Connection) -> None:
        if self._pool is not None:
            await self._pool.release(conn)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")


database_pool = DatabasePool()
