import json
from typing import Any, Dict, Optional
import structlog

from agent.utils import make_json_serializable
from db.pool import database_pool

logger = structlog.get_logger()

UPSERT_USER_SQL = """
    INSERT INTO "user"."user" (user_id, metadata, created_at, updated_at)
    VALUES ($1, $2, NOW(), NOW())
    ON CONFLICT (user_id) DO UPDATE SET updated_at = NOW()
"""

# One conversation per user: conversation_id = user_id
INSERT_EXCHANGE_SQL = """
    INSERT INTO "user".messages (user_id, conversation_id, role, content, metadata, created_at)
    VALUES
        ($1, $1, 'user', $2, $3, NOW()),
        ($1, $1, 'assistant', $4, $3, NOW())
"""


class QueryLogger:
    """
    Persists question/answer pairs for signed-in users.
    Every failure is logged and swallowed; logging never fails a request.
    """

    def __init__(self, pool):
        self.pool = pool

    async def ensure_user_exists(self, user_id: Optional[str], user_metadata: Optional[Dict[str, Any]] = None) -> None:
        if not user_id:
            return

        conn = None
        try:
            conn = await self.pool.acquire()
            await conn.execute(UPSERT_USER_SQL, user_id, json.dumps(user_metadata or {}))
            logger.info("User ready", user_id_preview=user_id[:8])
        except Exception as e:
            logger.warning("Failed to ensure user exists", error=str(e), error_type=type(e).__name__)
        finally:
            if conn is not None:
                await self.pool.release(conn)

    async def log_query(
        self,
        user_id: Optional[str],
        question: str,
        answer: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        if not user_id:
            logger.debug("Skipping query log, no user id")
            return

        conn = None
        try:
            conn = await self.pool.acquire()
            await conn.execute(
                INSERT_EXCHANGE_SQL,
                user_id,
                question,
                json.dumps(make_json_serializable(metadata or {})),
                answer
            )
            logger.info("Query logged", user_id_preview=user_id[:8])
        except Exception as e:
            logger.warning("Failed to log query", error=str(e), error_type=type(e).__name__)
            if 'relation "user.messages" does not exist' in str(e):
                logger.warning("Query log table missing, create the user.messages table first")
        finally:
            if conn is not None:
                await self.pool.release(conn)


query_logger = QueryLogger(database_pool)
