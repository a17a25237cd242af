import asyncio
import contextlib
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional
import structlog

from agent.errors import SynthesisError
from agent.llm import invoke_with_logging
from agent.prompts import (
    DEFAULT_EMPTY_RESULT_MESSAGE,
    EMPTY_RESULT_MESSAGES,
    GENERAL_KNOWLEDGE_FALLBACK,
    build_answer_messages,
    build_general_messages,
)
from agent.text_utils import StreamingAnswerFormatter, finalize_answer, strip_invisibles
from agent.utils import make_json_serializable
from services.config import settings

logger = structlog.get_logger()

DATE_FIELDS = ['price_timestamp', 'ts', 'day', 'date', 'timestamp', 'updated_at']
MAX_DIVERSITY_PROJECTS = 15
MAX_DIVERSITY_SYMBOLS = 20

_END_OF_STREAM = object()


def empty_result_answer(question: str) -> str:
    q = question.lower()
    for triggers, message in EMPTY_RESULT_MESSAGES:
        if any(t in q for t in triggers):
            return message
    return DEFAULT_EMPTY_RESULT_MESSAGE


def _long_date(value: date) -> str:
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def extract_data_date(rows: List[Dict[str, Any]]) -> Optional[str]:
    """Freshness date of a result set, read from the first row's date-like column."""
    if not rows:
        return None

    first_row = rows[0]
    for field in DATE_FIELDS:
        value = first_row.get(field)
        if not value:
            continue

        if isinstance(value, (datetime, date)):
            return _long_date(value)
        if isinstance(value, str) and len(value) >= 10:
            try:
                return _long_date(date.fromisoformat(value[:10]))
            except ValueError:
                continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            # Unix timestamp in seconds
            try:
                return _long_date(datetime.fromtimestamp(float(value), tz=timezone.utc))
            except (ValueError, OverflowError, OSError):
                continue
    return None


def compute_data_diversity(rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not rows:
        return None

    # dict keys keep first-seen order
    pools, chains, projects, symbols = {}, {}, {}, {}
    for row in rows:
        for key, seen in (("pool_id", pools), ("chain", chains), ("project", projects), ("symbol", symbols)):
            if row.get(key):
                seen[row[key]] = None

    return {
        "total_rows": len(rows),
        "unique_pools": len(pools),
        "unique_chains": len(chains),
        "unique_projects": len(projects),
        "unique_symbols": len(symbols),
        "chains": [str(c) for c in chains],
        "projects": [str(p) for p in projects][:MAX_DIVERSITY_PROJECTS],
        "symbols": [str(s) for s in symbols][:MAX_DIVERSITY_SYMBOLS],
    }


def _chunk_text(chunk: Any) -> str:
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    # Anthropic streams content blocks
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return str(content or "")


class AnswerSynthesizer:
    """Turns result rows into the final natural-language answer."""

    def __init__(self, llm, max_rows: Optional[int] = None, buffer_size: Optional[int] = None):
        self.llm = llm
        self.max_rows = max_rows or settings.answer_max_rows
        self.buffer_size = buffer_size or settings.stream_buffer_size

    def _messages(
        self,
        question: str,
        rows: List[Dict[str, Any]],
        presentation_hint: Optional[str],
        intent: Optional[str]
    ) -> List[Any]:
        diversity = compute_data_diversity(rows)
        if diversity and not (
            diversity["unique_pools"] > 1 or diversity["unique_chains"] > 1 or diversity["unique_projects"] > 1
        ):
            diversity = None

        return build_answer_messages(
            strip_invisibles(question),
            make_json_serializable(rows[:self.max_rows]),
            intent=intent,
            data_date=extract_data_date(rows),
            diversity=diversity,
            presentation_hint=presentation_hint
        )

    async def synthesize(
        self,
        question: str,
        rows: List[Dict[str, Any]],
        presentation_hint: Optional[str] = None,
        intent: Optional[str] = None,
        retry_count: int = 0
    ) -> str:
        if not rows:
            return empty_result_answer(question)

        messages = self._messages(question, rows, presentation_hint, intent)
        response = await invoke_with_logging(self.llm, messages, "answer_synthesizer")
        raw = _chunk_text(response)
        if not raw.strip():
            raise SynthesisError("Model returned an empty answer")

        answer = finalize_answer(raw)
        logger.info("Answer synthesized", intent=intent, retry_count=retry_count, answer_length=len(answer))
        return answer

    async def stream(
        self,
        question: str,
        rows: List[Dict[str, Any]],
        presentation_hint: Optional[str] = None,
        intent: Optional[str] = None,
        retry_count: int = 0
    ) -> AsyncIterator[str]:
        """
        Yield post-formatted answer fragments in arrival order.

        The model is drained by a producer task into a bounded queue, so a slow
        consumer pauses the producer. Closing the generator cancels the producer.
        """
        if not rows:
            yield empty_result_answer(question)
            return

        messages = self._messages(question, rows, presentation_hint, intent)
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.buffer_size)

        async def produce():
            try:
                async for chunk in self.llm.astream(messages):
                    text = _chunk_text(chunk)
                    if text:
                        await queue.put(text)
            except Exception as e:
                await queue.put(e)
                return
            await queue.put(_END_OF_STREAM)

        producer = asyncio.create_task(produce())
        formatter = StreamingAnswerFormatter()
        fragment_count = 0
        produced = False
        try:
            while True:
                item = await queue.get()
                if item is _END_OF_STREAM:
                    break
                if isinstance(item, Exception):
                    logger.error("Answer stream failed", error=str(item), error_type=type(item).__name__)
                    raise item

                formatted = formatter.feed(item)
                if formatted:
                    fragment_count += 1
                    produced = produced or bool(formatted.strip())
                    yield formatted

            tail = formatter.flush()
            if tail:
                fragment_count += 1
                produced = produced or bool(tail.strip())
                yield tail

            if not produced:
                raise SynthesisError("Model returned an empty answer")

            logger.info("Answer streamed", intent=intent, retry_count=retry_count, fragments=fragment_count)
        finally:
            if not producer.done():
                producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer

    async def answer_general_knowledge(self, question: str) -> str:
        response = await invoke_with_logging(self.llm, build_general_messages(question), "general_knowledge")
        return _chunk_text(response) or GENERAL_KNOWLEDGE_FALLBACK
