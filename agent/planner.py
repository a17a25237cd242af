import re
from typing import Any, Dict, List, Optional, Pattern, Tuple
import structlog

from agent.errors import PlannerError
from agent.llm import invoke_with_logging
from agent.prompts import build_planner_messages, build_retry_messages
from agent.prompts.retry import (
    FINAL_RETRY_STRATEGY,
    GENERAL_RETRY_STRATEGY,
    SIMPLIFY_RETRY_STRATEGY,
    TARGETED_RETRY_STRATEGIES,
)
from agent.utils import parse_json_content
from services.schema_registry import SchemaRegistry

logger = structlog.get_logger()

UNION_FORBIDDEN_PATTERN = re.compile(
    r'syntax error at or near "UNION"|UNION.*timestamp|timestamp.*UNION', re.IGNORECASE
)

# Checked in order, first match wins
ERROR_PATTERNS: List[Tuple[str, Pattern]] = [
    ('timestamp', re.compile(r'timestamp|bigint|interval|cannot be matched|operator does not exist.*timestamp', re.IGNORECASE)),
    ('union_forbidden', UNION_FORBIDDEN_PATTERN),
    ('schema', re.compile(r'column.*does not exist|relation.*does not exist|table.*does not exist', re.IGNORECASE)),
    ('syntax', re.compile(r'syntax error|invalid|unexpected|operator does not exist', re.IGNORECASE)),
    ('union', re.compile(r'union types.*cannot be matched', re.IGNORECASE)),
    ('empty_results', re.compile(r'no rows|empty result', re.IGNORECASE)),
    ('timeout', re.compile(r'timeout|statement timeout', re.IGNORECASE)),
    ('permission', re.compile(r'permission denied|access denied', re.IGNORECASE)),
    ('type_mismatch', re.compile(r'cannot cast|type.*cannot be matched', re.IGNORECASE)),
    ('complex_pool_query', re.compile(r'liquidity.*pool.*apy.*tvl|pool.*apy.*tvl|apy.*pool.*tvl', re.IGNORECASE)),
    ('advanced_analytics', re.compile(r'volatility|correlation|trend|moving.*average|outlier|seasonal|percentile|risk.*adjust', re.IGNORECASE)),
]

# Error types also matched against the question text
QUESTION_MATCHED_ERROR_TYPES = {'complex_pool_query'}


def classify_error(error_message: str, previous_sql: Optional[str] = None, question: str = "") -> str:
    if UNION_FORBIDDEN_PATTERN.search(error_message) or 'UNION' in (previous_sql or ''):
        return 'union_forbidden'

    for error_type, pattern in ERROR_PATTERNS:
        if pattern.search(error_message):
            return error_type
        if error_type in QUESTION_MATCHED_ERROR_TYPES and pattern.search(question):
            return error_type
    return 'unknown'


def retry_strategy(error_type: str, retry_count: int) -> str:
    if retry_count == 1:
        return TARGETED_RETRY_STRATEGIES.get(error_type, GENERAL_RETRY_STRATEGY)
    if retry_count == 2:
        return SIMPLIFY_RETRY_STRATEGY
    return FINAL_RETRY_STRATEGY


def extract_sql(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """SQL from a planner payload: {sql}, {query}, {plan: {sql}} or {plan: {query}}."""
    if not isinstance(payload, dict):
        return None

    candidates = [payload.get('sql'), payload.get('query')]
    plan = payload.get('plan')
    if isinstance(plan, dict):
        candidates.extend([plan.get('sql'), plan.get('query')])

    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return None


class QueryPlanner:
    """Asks the model for exactly one SQL statement, first from scratch and then error-aware."""

    def __init__(self, llm, registry: SchemaRegistry):
        self.llm = llm
        self.registry = registry

    async def _request_sql(self, messages: List[Any], step: str) -> Optional[str]:
        response = await invoke_with_logging(self.llm, messages, step)
        content = response.content if isinstance(response.content, str) else str(response.content)
        return extract_sql(parse_json_content(content))

    async def plan(self, question: str, schema_doc: str, intent: Optional[str] = None) -> str:
        sql = await self._request_sql(build_planner_messages(question, schema_doc), "planner")
        if not sql:
            logger.warning("Planner returned no SQL", intent=intent)
            raise PlannerError("Planner did not return SQL")

        logger.info("SQL planned", intent=intent, sql_preview=sql[:100])
        return sql

    async def retry(
        self,
        question: str,
        previous_sql: str,
        error_message: str,
        intent: Optional[str] = None,
        retry_count: int = 1
    ) -> str:
        error_type = classify_error(error_message, previous_sql, question)
        strategy = retry_strategy(error_type, retry_count)

        logger.info(
            "Retry planning",
            retry_count=retry_count,
            error_type=error_type,
            intent=intent,
            error_preview=error_message[:100]
        )

        # Retries see the full registry rather than the filtered doc
        messages = build_retry_messages(
            question,
            previous_sql or "",
            error_message,
            self.registry.full_doc(),
            strategy,
            retry_count
        )
        sql = await self._request_sql(messages, f"retry_planner_{retry_count}")
        if not sql:
            logger.warning("Retry planner returned no SQL", retry_count=retry_count, error_type=error_type)
            raise PlannerError("Retry planner did not return SQL")
        return sql
