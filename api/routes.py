import json
import uuid
from typing import Any, AsyncIterator, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from agent.errors import DatabaseUnavailableError
from agent.llm import get_llm
from agent.prompts import META_ANSWER
from agent.query_pipeline import ExecutionOutcome, QueryPipeline
from agent.scope import GENERAL_KNOWLEDGE_INTENTS, Scope
from agent.utils import make_json_serializable
from db.pool import database_pool
from query_tools.sql_guard import referenced_tables
from services.auth import get_optional_user_id
from services.query_logger import QueryLogger, query_logger
from services.schema_registry import schema_registry

router = APIRouter()
logger = structlog.get_logger()

SERVICE_VERSION = "1.0.0"

MISSING_QUESTION_ERROR = (
    "Missing 'question'. Provide JSON body {\"question\":\"...\"} or use ?q= in the URL."
)
EXAMPLE_QUESTION = "What was Ethereum TVL on the most recent date?"

GENERAL_KNOWLEDGE_NOTE = "This question was answered using general knowledge rather than database queries."
META_NOTE = "Service capabilities overview"
DATABASE_UNAVAILABLE_ERROR = "Database temporarily unavailable. Please try again."

STREAM_ROWS_PREVIEW = 10
DEBUG_ROWS_SAMPLE = 5
LOGGED_SQL_LENGTH = 500

# (lowercased fragments, user-facing message), first match wins
CONTEXTUAL_ERROR_MESSAGES = [
    (
        ("timestamp", "bigint", "union"),
        "There was a data compatibility issue with this query. "
        "Try asking about a single protocol or shorter time period."
    ),
    (
        ("does not exist", "column"),
        "This query requires data fields that aren't available. Try a simpler version of your question."
    ),
    (
        ("timeout", "statement_timeout"),
        "This query is too complex and timed out. "
        "Try asking about a shorter time period or specific protocols."
    ),
    (
        ("planner did not return sql",),
        "This query is too complex for our current capabilities. "
        "Try breaking it down into simpler questions or asking about specific protocols and metrics."
    ),
]


class HealthResponse(BaseModel):
    status: str
    version: str


_default_pipeline: Optional[QueryPipeline] = None


def get_query_pipeline() -> QueryPipeline:
    global _default_pipeline
    if _default_pipeline is None:
        _default_pipeline = QueryPipeline(
            get_llm(json_mode=True),
            database_pool,
            schema_registry,
            answer_llm=get_llm()
        )
    return _default_pipeline


def get_query_logger() -> QueryLogger:
    return query_logger


def contextual_error_message(message: str) -> str:
    lowered = message.lower()
    for fragments, contextual in CONTEXTUAL_ERROR_MESSAGES:
        if any(f in lowered for f in fragments):
            return contextual
    return message


def _intent_value(intent) -> Optional[str]:
    return getattr(intent, "value", intent)


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _read_body(request: Request) -> Dict[str, Any]:
    if request.method != "POST":
        return {}
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _flag(body: Dict[str, Any], request: Request, name: str) -> bool:
    return body.get(name) is True or request.query_params.get(name) == "true"


def _log_metadata(intent: Optional[str], outcome: ExecutionOutcome) -> Dict[str, Any]:
    return {
        "intent": intent,
        "sql": outcome.sql[:LOGGED_SQL_LENGTH],
        "rows": len(outcome.rows),
        "tables": referenced_tables(outcome.sql),
    }


async def _answer_events(
    pipeline: QueryPipeline,
    logger_service: QueryLogger,
    user_id: Optional[str],
    question: str,
    outcome: ExecutionOutcome,
    rows,
    presentation_hint: Optional[str]
) -> AsyncIterator[str]:
    intent = _intent_value(outcome.intent)

    yield _sse({"type": "sql", "sql": outcome.sql})
    yield _sse({"type": "rows", "rows": rows[:STREAM_ROWS_PREVIEW], "totalRows": len(rows)})
    yield _sse({"type": "answer_start"})

    parts = []
    try:
        async for content in pipeline.stream_answer(question, outcome, presentation_hint=presentation_hint):
            parts.append(content)
            yield _sse({"type": "answer_chunk", "content": content})
    except Exception as e:
        logger.error("Streaming answer failed", error=str(e), error_type=type(e).__name__)
        yield _sse({"type": "error", "error": str(e)})
        return

    yield _sse({"type": "done", "retryCount": outcome.retry_count, "intent": intent})
    await logger_service.log_query(user_id, question, "".join(parts), _log_metadata(intent, outcome))


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="healthy", version=SERVICE_VERSION)


@router.api_route("/query", methods=["GET", "POST"])
async def query(
    request: Request,
    pipeline: QueryPipeline = Depends(get_query_pipeline),
    logger_service: QueryLogger = Depends(get_query_logger),
    user_id: Optional[str] = Depends(get_optional_user_id)
):
    body = await _read_body(request)
    question = body.get("question") or request.query_params.get("q") or request.query_params.get("question")
    if not isinstance(question, str):
        question = None
    minimal = _flag(body, request, "minimal")
    stream = _flag(body, request, "stream")
    presentation_hint = body.get("presentationHint")

    if not question:
        endpoint = f"{str(request.base_url).rstrip('/')}{request.url.path}"
        return JSONResponse(
            status_code=400,
            content={
                "error": MISSING_QUESTION_ERROR,
                "exampleCurl": (
                    f"curl -H \"content-type: application/json\" "
                    f"-d '{{\"question\":\"{EXAMPLE_QUESTION}\"}}' {endpoint}"
                )
            }
        )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=str(uuid.uuid4()))

    intent = None
    try:
        classification = pipeline.classify(question)

        if classification.scope is Scope.META:
            return {"answer": META_ANSWER, "source": "meta_response", "note": META_NOTE}

        if classification.scope is Scope.GENERAL_KNOWLEDGE:
            answer = await pipeline.answer_general_knowledge(question)
            return {"answer": answer, "source": "general_knowledge", "note": GENERAL_KNOWLEDGE_NOTE}

        intent = _intent_value(classification.intent)
        structlog.contextvars.bind_contextvars(intent=intent)

        if classification.intent in GENERAL_KNOWLEDGE_INTENTS:
            answer = await pipeline.answer_general_knowledge(question)
            return {"answer": answer, "source": "general_knowledge", "intent": intent}

        if user_id:
            await logger_service.ensure_user_exists(user_id)

        outcome = await pipeline.execute(question, intent=intent)
        rows = make_json_serializable(outcome.rows)

        if minimal:
            return {"sql": outcome.sql, "rows": rows, "source": "database_query", "intent": intent}

        if stream:
            return StreamingResponse(
                _answer_events(pipeline, logger_service, user_id, question, outcome, rows, presentation_hint),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
            )

        answer = await pipeline.answer(question, outcome, presentation_hint=presentation_hint)
        await logger_service.log_query(user_id, question, answer, _log_metadata(intent, outcome))

        payload = {
            "sql": outcome.sql,
            "rows": rows,
            "answer": answer,
            "source": "database_query",
            "intent": intent,
            "retryCount": outcome.retry_count,
            "debug": {
                "sql": outcome.sql,
                "raw_data_sample": rows[:DEBUG_ROWS_SAMPLE],
                "total_rows": len(rows)
            }
        }
        chart = pipeline.chart_for(question, outcome)
        if chart is not None:
            payload["chart"] = make_json_serializable(chart)
        return payload

    except DatabaseUnavailableError as e:
        logger.error("Database unavailable", error=e.reason)
        return JSONResponse(
            status_code=503,
            content={"error": DATABASE_UNAVAILABLE_ERROR, "details": e.reason}
        )
    except Exception as e:
        message = getattr(e, "message", None) or str(e) or type(e).__name__
        logger.error("Query request failed", error=message, error_type=type(e).__name__, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": contextual_error_message(message),
                "intent": intent,
                "technical_details": message,
                "db": {
                    "code": getattr(e, "code", None),
                    "detail": getattr(e, "detail", None),
                    "hint": getattr(e, "hint", None),
                    "position": getattr(e, "position", None)
                },
                "sql": getattr(e, "sql", None)
            }
        )
