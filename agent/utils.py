import json
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID
import structlog

logger = structlog.get_logger()

JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')


def parse_json_content(content: str) -> Optional[Dict[str, Any]]:
    """Robustly parse JSON from LLM response strings"""
    if not content:
        return None

    # Try direct parse
    try:
        return json.loads(content)
    except ValueError:
        pass

    # Try extracting from code blocks
    if "```" in content:
        block = content.split("```json")[1] if "```json" in content else content.split("```")[1]
        try:
            return json.loads(block.split("```")[0].strip())
        except ValueError:
            pass

    # Fall back to the outermost {...} span
    match = JSON_OBJECT_PATTERN.search(content)
    if match:
        try:
            return json.loads(match.group(0))
        except ValueError as e:
            logger.warning("Failed to parse JSON content", error=str(e), partial_content=content[:100])
            return None

    logger.warning("No JSON object in content", partial_content=content[:100])
    return None


def make_json_serializable(obj: Any) -> Any:
    """Helper to convert objects like UUIDs, datetimes or Decimals to JSON serializable formats"""
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, dict):
        return {k: make_json_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [make_json_serializable(i) for i in obj]
    return obj
