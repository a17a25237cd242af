import time
from typing import Any, Dict, List, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from services.config import settings
import structlog

logger = structlog.get_logger()

# OpenRouter API base URL (OpenAI-compatible)
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

JSON_RESPONSE_FORMAT = {"type": "json_object"}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    json_mode: bool = False
):
    """
    Get an LLM instance based on provider and model configuration.

    Args:
        provider: LLM provider ('openai', 'anthropic' or 'openrouter')
        model: Model name
        temperature: Temperature setting (0-2)
        json_mode: Ask OpenAI-compatible providers for a JSON object response

    Returns:
        Chat model (ChatOpenAI or ChatAnthropic), bound to JSON output when requested
    """
    provider = provider or settings.llm_provider
    model = model or settings.llm_model
    temperature = temperature if temperature is not None else settings.llm_temperature

    logger.info(
        "Initializing LLM",
        provider=provider,
        model=model,
        temperature=temperature,
        json_mode=json_mode
    )

    if provider == 'openai':
        if not settings.openai_api_key:
            raise ValueError("OpenAI API key not configured")

        llm = ChatOpenAI(
            model=model,
            api_key=settings.openai_api_key,
            temperature=temperature
        )

    elif provider == 'anthropic':
        if not settings.anthropic_api_key:
            raise ValueError("Anthropic API key not configured")

        # Anthropic has no JSON response mode; the prompts already demand strict JSON
        return ChatAnthropic(
            model=model,
            api_key=settings.anthropic_api_key,
            temperature=temperature
        )

    elif provider == 'openrouter':
        if not settings.openrouter_api_key:
            raise ValueError("OpenRouter API key not configured")

        llm = ChatOpenAI(
            model=model,
            api_key=settings.openrouter_api_key,
            base_url=OPENROUTER_BASE_URL,
            temperature=temperature,
            default_headers={
                "HTTP-Referer": "https://defi-query.local",
                "X-Title": "DeFi Query Runtime"
            }
        )

    else:
        logger.error("Unsupported LLM provider", provider=provider)
        raise ValueError(f"Unsupported LLM provider: {provider}")

    if json_mode:
        return llm.bind(response_format=JSON_RESPONSE_FORMAT)
    return llm


def extract_token_usage(message: Any) -> Dict[str, Optional[int]]:
    """Token usage from a chat model response, whichever metadata shape the provider uses."""
    if getattr(message, 'usage_metadata', None):
        usage = message.usage_metadata
        return {
            "prompt_tokens": usage.get("input_tokens", usage.get("prompt_tokens")),
            "completion_tokens": usage.get("output_tokens", usage.get("completion_tokens")),
            "total_tokens": usage.get("total_tokens")
        }

    meta = getattr(message, 'response_metadata', None) or {}
    usage = meta.get("token_usage") or meta.get("usage") or {}
    return {
        "prompt_tokens": usage.get("prompt_tokens"),
        "completion_tokens": usage.get("completion_tokens"),
        "total_tokens": usage.get("total_tokens")
    }


async def invoke_with_logging(llm: BaseChatModel, messages: List[Any], step: str) -> Any:
    """Wrapper for LLM calls with timing and token usage logging."""
    start_time = time.time()

    try:
        response = await llm.ainvoke(messages)
    except Exception as e:
        logger.error(f"LLM call failed for {step}", error=str(e), error_type=type(e).__name__)
        raise

    token_usage = extract_token_usage(response)
    logger.info(
        f"LLM call completed for {step}",
        duration_ms=int((time.time() - start_time) * 1000),
        tokens=token_usage.get('total_tokens') or 0
    )
    return response
