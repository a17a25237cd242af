from typing import Dict
import structlog

from agent.errors import PlannerError
from agent.nodes.base import BaseExecutionNode, ExecutionState, PlanAttempt

logger = structlog.get_logger()


class PlanningNodes(BaseExecutionNode):
    async def planning(self, state: ExecutionState) -> Dict:
        """Planning(0): first SQL attempt from the filtered schema."""
        try:
            sql = await self.planner.plan(state["question"], state["schema_doc"], state.get("intent"))
        except PlannerError as e:
            return self._failed_attempt(
                state, None, str(e),
                current_step="planning_failed",
                transitions=["planning"]
            )

        return {
            "sql": sql,
            "error": None,
            "current_step": "planned",
            "transitions": ["planning"]
        }

    async def retry_pending(self, state: ExecutionState) -> Dict:
        """RetryPending(k): ask the retry planner for attempt k+1, or give up at the bound."""
        retry_count = state.get("retry_count", 0)
        max_retries = state["max_retries"]

        if retry_count >= max_retries:
            logger.warning(
                "Retry budget exhausted",
                retry_count=retry_count,
                last_error=(state.get("error") or "")[:100]
            )
            return {"current_step": "retries_exhausted", "transitions": ["retry_pending"]}

        next_attempt = retry_count + 1
        logger.info(
            "Retrying with error-aware planner",
            retry_count=next_attempt,
            error_preview=(state.get("error") or "")[:100]
        )

        try:
            sql = await self.planner.retry(
                state["question"],
                state.get("last_sql") or "",
                state.get("error") or "",
                state.get("intent"),
                next_attempt
            )
        except PlannerError as e:
            # The failed retry plan still consumes its slot
            return {
                "retry_count": next_attempt,
                "attempt": next_attempt,
                "sql": None,
                "error": str(e),
                "db_error": None,
                "attempts": [PlanAttempt(index=next_attempt, sql=None, error=str(e))],
                "current_step": "retry_plan_failed",
                "transitions": ["retry_pending"]
            }

        return {
            "retry_count": next_attempt,
            "attempt": next_attempt,
            "sql": sql,
            "guarded_sql": None,
            "error": None,
            "current_step": "retry_planned",
            "transitions": ["retry_pending"]
        }
