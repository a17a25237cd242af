import asyncio
import time
from typing import Any, Dict, List, Optional
import structlog

from agent.errors import DatabaseUnavailableError, QueryExecutionError
from services.config import settings

logger = structlog.get_logger()


class SQLExecutor:
    """Runs one guarded statement on one pooled connection."""

    def __init__(self, pool, timeout_ms: Optional[int] = None):
        self.pool = pool
        self.timeout_ms = timeout_ms or settings.db_query_timeout_ms

    async def execute(self, sql: str, timeout_ms: Optional[int] = None) -> List[Dict[str, Any]]:
        timeout_ms = timeout_ms or self.timeout_ms

        # 1. ACQUIRE PHASE (fatal, never retried)
        try:
            conn = await self.pool.acquire()
        except DatabaseUnavailableError:
            raise
        except Exception as e:
            logger.error("Connection acquisition failed", error=str(e), error_type=type(e).__name__)
            raise DatabaseUnavailableError(str(e)) from e

        # 2. EXECUTE PHASE
        start_time = time.time()
        try:
            await conn.execute(f"SET statement_timeout TO {int(timeout_ms)}")
            # Client-side ceiling in case the server never cancels the statement
            rows = await asyncio.wait_for(
                conn.fetch(sql),
                timeout=timeout_ms / 1000 + 5
            )
        except asyncio.TimeoutError as e:
            logger.warning("Query execution timeout", timeout_ms=timeout_ms, sql_preview=sql[:100])
            raise QueryExecutionError(f"Query execution timeout after {timeout_ms} ms") from e
        except Exception as e:
            logger.warning(
                "Query execution failed",
                error=str(e),
                error_type=type(e).__name__,
                sqlstate=getattr(e, "sqlstate", None),
                sql_preview=sql[:100]
            )
            raise QueryExecutionError.from_exception(e) from e
        finally:
            await self.pool.release(conn)

        results = [dict(row) for row in rows]
        logger.info(
            "Query executed",
            row_count=len(results),
            duration_ms=int((time.time() - start_time) * 1000),
            sql_preview=sql[:100]
        )
        return results
