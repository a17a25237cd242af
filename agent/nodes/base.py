from dataclasses import dataclass
from typing import Any, Annotated, Dict, List, Optional, TypedDict
import operator
import structlog

from agent.planner import QueryPlanner
from query_tools.sql_executor import SQLExecutor
from query_tools.sql_guard import SQLGuard

logger = structlog.get_logger()


@dataclass
class PlanAttempt:
    index: int
    sql: Optional[str]
    error: Optional[str] = None


class ExecutionState(TypedDict):
    question: str
    schema_doc: str
    intent: Optional[str]
    max_retries: int

    # Live attempt
    attempt: int
    retry_count: int
    sql: Optional[str]
    guarded_sql: Optional[str]
    last_sql: Optional[str]

    # Outcome
    rows: Optional[List[Dict[str, Any]]]
    error: Optional[str]
    db_error: Optional[Dict[str, Any]]
    original_error: Optional[str]
    connection_error: Optional[str]

    attempts: Annotated[List[PlanAttempt], operator.add]
    transitions: Annotated[List[str], operator.add]
    current_step: str


class BaseExecutionNode:
    def __init__(
        self,
        planner: QueryPlanner,
        guard: SQLGuard,
        executor: SQLExecutor,
        max_limit: Optional[int] = None
    ):
        self.planner = planner
        self.guard = guard
        self.executor = executor
        self.max_limit = max_limit or guard.max_limit

    def _failed_attempt(self, state: ExecutionState, sql: Optional[str], error: str, **updates) -> Dict:
        """State update for an attempt that must go through RetryPending."""
        return {
            "error": error,
            "last_sql": sql,
            "original_error": state.get("original_error") or error,
            "attempts": [PlanAttempt(index=state["attempt"], sql=sql, error=error)],
            **updates
        }
