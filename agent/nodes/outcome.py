from typing import Dict
import structlog

from agent.nodes.base import BaseExecutionNode, ExecutionState

logger = structlog.get_logger()


class OutcomeNodes(BaseExecutionNode):
    async def succeeded(self, state: ExecutionState) -> Dict:
        logger.info(
            "Query succeeded",
            retry_count=state.get("retry_count", 0),
            row_count=len(state.get("rows") or [])
        )
        return {"current_step": "succeeded", "transitions": ["succeeded"]}

    async def failed(self, state: ExecutionState) -> Dict:
        if state.get("connection_error"):
            logger.error("Database unavailable", reason=state["connection_error"])
        else:
            logger.error(
                "Query failed after retries",
                retry_count=state.get("retry_count", 0),
                error=state.get("error"),
                original_error=state.get("original_error")
            )
        return {"current_step": "failed", "transitions": ["failed"]}
