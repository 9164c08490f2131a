import logging
from typing import Any, Dict, Optional

# LangChain Imports
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

# Langfuse SDK - @observe decorator for LLM tracing
from langfuse import get_client, observe

from fitplan.config import (
    LANGFUSE_ENABLED,
    LLM_MODEL as OVERRIDE_MODEL,
    LLM_PROVIDER,
    OLLAMA_URL,
    PLAN_MAX_OUTPUT_TOKENS,
    PLAN_TEMPERATURE,
    require_llm_api_key,
)
from fitplan.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# If LLM_MODEL is set in env, it overrides these.
DEFAULT_MODELS = {
    "gemini": "gemini-2.0-flash",
    "openrouter": "google/gemini-2.0-flash-001",
    "openai": "gpt-4o",
    "ollama": "llama3.1",
}

# Base URLs for OpenAI compatible providers
PROVIDER_URLS = {
    "openrouter": "https://openrouter.ai/api/v1",
    "openai": None,  # Uses default OpenAI URL
}


def model_name_for(provider: str) -> str:
    return OVERRIDE_MODEL or DEFAULT_MODELS.get(provider, DEFAULT_MODELS["gemini"])


def get_llm(
    temperature: float = PLAN_TEMPERATURE,
    max_tokens: int = PLAN_MAX_OUTPUT_TOKENS,
    json_mode: bool = False,
    provider: Optional[str] = None,
    api_key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> BaseChatModel:
    """
    Factory for a configured LangChain chat model.
    Supports: Gemini (default), OpenAI, OpenRouter, Ollama (Local)

    Built once and handed to the plan generator. A remote provider without
    a key raises ConfigurationError here, before any request is made.
    Client-side retries are disabled; the generator owns the retry budget.
    """
    provider = (provider or LLM_PROVIDER).lower()
    model_name = model_name_for(provider)

    # 1. Gemini
    if provider == "gemini":
        key = require_llm_api_key(provider, api_key)
        extra: Dict[str, Any] = {}
        if json_mode:
            extra["response_mime_type"] = "application/json"
        logger.info(f"Using Gemini model {model_name}")
        return ChatGoogleGenerativeAI(
            model=model_name,
            google_api_key=key,
            temperature=temperature,
            max_output_tokens=max_tokens,
            timeout=timeout,
            max_retries=0,
            **extra,
        )

    # 2. OpenAI Compatible (OpenRouter, OpenAI)
    if provider in PROVIDER_URLS:
        key = require_llm_api_key(provider, api_key)
        model_kwargs = {}
        if json_mode:
            model_kwargs["response_format"] = {"type": "json_object"}
        logger.info(f"Using {provider} model {model_name}")
        return ChatOpenAI(
            model=model_name,
            api_key=key,
            base_url=PROVIDER_URLS[provider],
            temperature=temperature,
            max_tokens=max_tokens,
            model_kwargs=model_kwargs,
            timeout=timeout,
            max_retries=0,
        )

    # 3. Ollama (Local)
    if provider == "ollama":
        logger.info(f"Using Ollama model {model_name} at {OLLAMA_URL}")
        return ChatOllama(
            base_url=OLLAMA_URL,
            model=model_name,
            temperature=temperature,
            num_predict=max_tokens,
            format="json" if json_mode else "",
        )

    raise ConfigurationError(f"Unknown LLM provider '{provider}'")


def traced_generation(name: str):
    """Langfuse @observe when tracing keys are configured, otherwise the function unchanged."""
    if not LANGFUSE_ENABLED:
        return lambda func: func
    return observe(name=name, as_type="generation")


def log_token_usage(response: Any, model_name: Optional[str] = None, **parameters) -> Dict[str, int]:
    """
    Log input/output token counts of a chat response and forward them to Langfuse.
    Providers report usage in different places, so look in each.
    """
    input_tokens = output_tokens = 0

    usage_metadata = getattr(response, "usage_metadata", None)
    if usage_metadata:
        input_tokens = usage_metadata.get("input_tokens") or 0
        output_tokens = usage_metadata.get("output_tokens") or 0

    metadata = getattr(response, "response_metadata", None) or {}
    if input_tokens == 0 and output_tokens == 0 and metadata:
        # Ollama: prompt_eval_count (input), eval_count (output)
        input_tokens = metadata.get("prompt_eval_count") or 0
        output_tokens = metadata.get("eval_count") or 0

        # OpenAI-compatible providers nest it under usage / token_usage
        if input_tokens == 0 and output_tokens == 0:
            usage = metadata.get("usage") or metadata.get("token_usage") or {}
            input_tokens = usage.get("prompt_tokens") or usage.get("input_tokens") or 0
            output_tokens = usage.get("completion_tokens") or usage.get("output_tokens") or 0

    usage_details = {
        "input": input_tokens,
        "output": output_tokens,
        "total": input_tokens + output_tokens,
    }
    logger.info(f"[LLM Stats] Input: {input_tokens}, Output: {output_tokens}, Total: {usage_details['total']}")

    if LANGFUSE_ENABLED:
        try:
            get_client().update_current_generation(
                model=model_name,
                usage_details=usage_details,
                model_parameters=parameters or None,
                metadata={"mode": "json"},
            )
        except Exception as e:
            logger.warning(f"[Langfuse] Failed to update generation: {e}")

    return usage_details
