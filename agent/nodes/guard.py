from typing import Dict
import structlog

from agent.errors import SQLGuardError
from agent.nodes.base import BaseExecutionNode, ExecutionState

logger = structlog.get_logger()


class GuardNodes(BaseExecutionNode):
    async def guarding(self, state: ExecutionState) -> Dict:
        """Guarding(k): a rejected statement never reaches the database."""
        sql = state.get("sql")
        try:
            guarded = self.guard.guard(sql, max_limit=self.max_limit)
        except SQLGuardError as e:
            logger.warning("SQL rejected by guard", attempt=state["attempt"], reason=str(e))
            return self._failed_attempt(
                state, sql, str(e),
                db_error=None,
                current_step="guard_rejected",
                transitions=["guarding"]
            )

        return {
            "guarded_sql": guarded,
            "last_sql": guarded,
            "current_step": "guarded",
            "transitions": ["guarding"]
        }
