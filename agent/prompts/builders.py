"""
Dynamic prompt builder functions.
"""

import json
from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from agent.prompts.answer import (
    ANALYST_SYSTEM_PROMPT,
    DATA_TIMESTAMP_NOTE,
    DIVERSITY_NOTE_FOOTER,
    DIVERSITY_NOTE_HEADER,
    QUANT_ANALYST_INTENTS,
    QUANT_ANALYST_SYSTEM_PROMPT,
    UNKNOWN_TIMESTAMP_NOTE,
)
from agent.prompts.general import GENERAL_KNOWLEDGE_SYSTEM_PROMPT
from agent.prompts.planner import PLANNER_SYSTEM_PROMPT, RETRY_SYSTEM_PROMPT


def build_planner_messages(question: str, schema_doc: str) -> List[BaseMessage]:
    """
    Build the first-attempt planner conversation.

    Args:
        question: User question
        schema_doc: Filtered schema doc for the question

    Returns:
        System prompt with templates and schema, followed by the question
    """
    system_prompt = PLANNER_SYSTEM_PROMPT.replace("{schema_doc}", schema_doc)
    return [
        SystemMessage(content=system_prompt),
        HumanMessage(content=f"Question: {question}\nReturn ONLY the JSON plan as specified."),
    ]


def build_retry_messages(
    question: str,
    previous_sql: str,
    error_message: str,
    schema_doc: str,
    retry_strategy: str,
    retry_count: int
) -> List[BaseMessage]:
    """
    Build the error-aware retry conversation. The failed SQL and its error are
    replayed as the assistant's previous turn.
    """
    system_prompt = (
        RETRY_SYSTEM_PROMPT
        .replace("{retry_count}", str(retry_count))
        .replace("{retry_strategy}", retry_strategy)
        .replace("{error_message}", error_message)
        .replace("{schema_doc}", schema_doc)
    )
    return [
        SystemMessage(content=system_prompt),
        HumanMessage(content=f"Original question:\n{question}"),
        AIMessage(content=f"Previous SQL:\n{previous_sql}\n\nError:\n{error_message}"),
    ]


def _format_diversity(diversity: Dict[str, Any]) -> str:
    lines = [DIVERSITY_NOTE_HEADER, f"- Total rows: {diversity['total_rows']}"]
    if diversity["unique_pools"]:
        lines.append(f"- Unique pools/markets: {diversity['unique_pools']}")
    if diversity["unique_chains"]:
        lines.append(f"- Chains represented: {diversity['unique_chains']} ({', '.join(diversity['chains'])})")
    if diversity["unique_projects"]:
        lines.append(f"- Protocols/projects: {diversity['unique_projects']} ({', '.join(diversity['projects'])})")
    if diversity["unique_symbols"]:
        lines.append(f"- Unique assets: {diversity['unique_symbols']}")
    return "\n".join(lines) + DIVERSITY_NOTE_FOOTER


def build_answer_messages(
    question: str,
    rows: List[Dict[str, Any]],
    intent: Optional[str] = None,
    data_date: Optional[str] = None,
    diversity: Optional[Dict[str, Any]] = None,
    presentation_hint: Optional[str] = None
) -> List[BaseMessage]:
    """
    Build the answer composition conversation.

    Args:
        question: User question, already stripped of invisible characters
        rows: JSON-serializable rows to ground the answer on
        intent: Intent label, selects the quantitative prompt for analytics intents
        data_date: Human-readable freshness date of the data, if known
        diversity: Output of compute_data_diversity, included when the data spans several pools/chains/projects
        presentation_hint: Free-form caller hint about the desired presentation
    """
    system_prompt = QUANT_ANALYST_SYSTEM_PROMPT if intent in QUANT_ANALYST_INTENTS else ANALYST_SYSTEM_PROMPT

    timestamp_note = DATA_TIMESTAMP_NOTE.format(data_date=data_date) if data_date else UNKNOWN_TIMESTAMP_NOTE
    diversity_note = _format_diversity(diversity) if diversity else ""

    user_content = (
        f"Question: {question}\n\n"
        f"Query Results (JSON): {json.dumps(rows)}"
        f"{timestamp_note}{diversity_note}"
    )
    if presentation_hint:
        user_content += f"\n\nPresentation hint: {presentation_hint}"

    return [
        SystemMessage(content=system_prompt),
        HumanMessage(content=user_content),
    ]


def build_general_messages(question: str) -> List[BaseMessage]:
    return [
        SystemMessage(content=GENERAL_KNOWLEDGE_SYSTEM_PROMPT),
        HumanMessage(content=question),
    ]
