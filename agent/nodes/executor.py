from typing import Dict
import structlog

from agent.errors import DatabaseUnavailableError, QueryExecutionError
from agent.nodes.base import BaseExecutionNode, ExecutionState, PlanAttempt

logger = structlog.get_logger()


class ExecutorNodes(BaseExecutionNode):
    async def executing(self, state: ExecutionState) -> Dict:
        """Executing(k): one statement on one pooled connection."""
        sql = state["guarded_sql"]
        logger.info("Executing SQL", attempt=state["attempt"], sql_preview=sql[:100])

        try:
            rows = await self.executor.execute(sql)
        except DatabaseUnavailableError as e:
            # Fatal, never retried
            return {
                "connection_error": e.reason,
                "current_step": "connection_failed",
                "transitions": ["executing"]
            }
        except QueryExecutionError as e:
            return self._failed_attempt(
                state, sql, e.message,
                db_error=e.db_details(),
                current_step="execution_failed",
                transitions=["executing"]
            )

        return {
            "rows": rows,
            "error": None,
            "attempts": [PlanAttempt(index=state["attempt"], sql=sql)],
            "current_step": "executed",
            "transitions": ["executing"]
        }
