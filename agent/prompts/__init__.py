from agent.prompts.answer import (
    DEFAULT_EMPTY_RESULT_MESSAGE,
    EMPTY_RESULT_MESSAGES,
    QUANT_ANALYST_INTENTS
)
from agent.prompts.builders import (
    build_answer_messages,
    build_general_messages,
    build_planner_messages,
    build_retry_messages
)
from agent.prompts.general import GENERAL_KNOWLEDGE_FALLBACK, META_ANSWER

__all__ = [
    "DEFAULT_EMPTY_RESULT_MESSAGE",
    "EMPTY_RESULT_MESSAGES",
    "QUANT_ANALYST_INTENTS",
    "GENERAL_KNOWLEDGE_FALLBACK",
    "META_ANSWER",
    "build_answer_messages",
    "build_general_messages",
    "build_planner_messages",
    "build_retry_messages"
]
