from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog
from langgraph.graph import StateGraph, END

from agent.chart_selector import select_chart
from agent.errors import DatabaseUnavailableError, QueryFailedError
from agent.nodes import ExecutionGraphNodes, ExecutionState, PlanAttempt
from agent.planner import QueryPlanner
from agent.schema_filter import SchemaFilter
from agent.scope import Classification, classify
from agent.synthesizer import AnswerSynthesizer
from query_tools.sql_executor import SQLExecutor
from query_tools.sql_guard import SQLGuard
from services.config import settings
from services.schema_registry import SchemaRegistry

logger = structlog.get_logger()

GRAPH_RECURSION_LIMIT = 50


@dataclass
class ExecutionOutcome:
    sql: str
    rows: List[Dict[str, Any]]
    retry_count: int
    intent: Optional[str]
    attempts: List[PlanAttempt] = field(default_factory=list)
    transitions: List[str] = field(default_factory=list)


class QueryPipeline:
    """
    Question to rows: schema filter, planner, then the plan/guard/execute/retry
    state machine compiled as a langgraph graph. Answer synthesis and chart
    selection run on the resulting rows.
    """

    def __init__(
        self,
        llm,
        pool,
        registry: SchemaRegistry,
        answer_llm=None,
        schema_filter: Optional[SchemaFilter] = None,
        guard: Optional[SQLGuard] = None,
        max_retries: Optional[int] = None,
        max_limit: Optional[int] = None
    ):
        self.registry = registry
        self.schema_filter = schema_filter or SchemaFilter(registry)
        self.guard = guard or SQLGuard(max_limit or settings.sql_max_limit)
        self.max_retries = max_retries if max_retries is not None else settings.query_max_retries

        self.planner = QueryPlanner(llm, registry)
        self.executor = SQLExecutor(pool)
        self.synthesizer = AnswerSynthesizer(answer_llm or llm)
        self.nodes = ExecutionGraphNodes(self.planner, self.guard, self.executor, max_limit=max_limit)
        self.app = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        workflow = StateGraph(ExecutionState)

        # Add nodes, one per named state
        workflow.add_node("planning", self.nodes.planning)
        workflow.add_node("guarding", self.nodes.guarding)
        workflow.add_node("executing", self.nodes.executing)
        workflow.add_node("retry_pending", self.nodes.retry_pending)
        workflow.add_node("succeeded", self.nodes.succeeded)
        workflow.add_node("failed", self.nodes.failed)

        workflow.set_entry_point("planning")

        workflow.add_conditional_edges(
            "planning",
            self._check_planning,
            {
                "planned": "guarding",
                "retry": "retry_pending"
            }
        )
        workflow.add_conditional_edges(
            "guarding",
            self._check_guard,
            {
                "valid": "executing",
                "retry": "retry_pending"
            }
        )
        workflow.add_conditional_edges(
            "executing",
            self._check_execution,
            {
                "success": "succeeded",
                "retry": "retry_pending",
                "fatal": "failed"
            }
        )
        workflow.add_conditional_edges(
            "retry_pending",
            self._check_retry,
            {
                "planned": "guarding",
                "retry": "retry_pending",
                "exhausted": "failed"
            }
        )

        workflow.add_edge("succeeded", END)
        workflow.add_edge("failed", END)

        return workflow

    # --- Routing ---

    def _check_planning(self, state: ExecutionState) -> str:
        return "retry" if state.get("error") else "planned"

    def _check_guard(self, state: ExecutionState) -> str:
        return "retry" if state.get("current_step") == "guard_rejected" else "valid"

    def _check_execution(self, state: ExecutionState) -> str:
        if state.get("connection_error"):
            return "fatal"
        return "retry" if state.get("error") else "success"

    def _check_retry(self, state: ExecutionState) -> str:
        step = state.get("current_step")
        if step == "retries_exhausted":
            return "exhausted"
        if step == "retry_plan_failed":
            return "retry"
        return "planned"

    # --- Public Interface ---

    def classify(self, question: str) -> Classification:
        return classify(question)

    async def execute(self, question: str, intent: Optional[str] = None) -> ExecutionOutcome:
        """
        Run the question through the state machine.

        Raises:
            DatabaseUnavailableError: the pool could not hand out a connection
            QueryFailedError: every attempt failed within the retry budget
        """
        filtered = self.schema_filter.build(question)
        logger.info(
            "Starting query execution",
            intent=intent,
            tables=filtered.tables[:5],
            generations=filtered.generations
        )

        initial_state = ExecutionState(
            question=question,
            schema_doc=filtered.doc,
            intent=intent,
            max_retries=self.max_retries,
            attempt=0,
            retry_count=0,
            sql=None,
            guarded_sql=None,
            last_sql=None,
            rows=None,
            error=None,
            db_error=None,
            original_error=None,
            connection_error=None,
            attempts=[],
            transitions=[],
            current_step="init"
        )

        final_state = await self.app.ainvoke(initial_state, config={"recursion_limit": GRAPH_RECURSION_LIMIT})

        if final_state.get("connection_error"):
            raise DatabaseUnavailableError(final_state["connection_error"])

        if final_state.get("current_step") != "succeeded":
            db_error = final_state.get("db_error") or {}
            raise QueryFailedError(
                f"Query failed after {self.max_retries} learning attempts: {final_state.get('error')}",
                sql=final_state.get("last_sql"),
                retry_count=final_state.get("retry_count", 0),
                original_error=final_state.get("original_error"),
                **db_error
            )

        return ExecutionOutcome(
            sql=final_state["guarded_sql"],
            rows=final_state.get("rows") or [],
            retry_count=final_state.get("retry_count", 0),
            intent=intent,
            attempts=list(final_state.get("attempts") or []),
            transitions=list(final_state.get("transitions") or [])
        )

    async def answer(self, question: str, outcome: ExecutionOutcome, presentation_hint: Optional[str] = None) -> str:
        return await self.synthesizer.synthesize(
            question,
            outcome.rows,
            presentation_hint=presentation_hint,
            intent=outcome.intent,
            retry_count=outcome.retry_count
        )

    def stream_answer(
        self,
        question: str,
        outcome: ExecutionOutcome,
        presentation_hint: Optional[str] = None
    ) -> AsyncIterator[str]:
        return self.synthesizer.stream(
            question,
            outcome.rows,
            presentation_hint=presentation_hint,
            intent=outcome.intent,
            retry_count=outcome.retry_count
        )

    async def answer_general_knowledge(self, question: str) -> str:
        return await self.synthesizer.answer_general_knowledge(question)

    def chart_for(self, question: str, outcome: ExecutionOutcome) -> Optional[Dict[str, Any]]:
        return select_chart(question, outcome.rows, outcome.intent)
