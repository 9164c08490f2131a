import os
from dotenv import load_dotenv

from fitplan.exceptions import ConfigurationError

load_dotenv(override=False)


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(os.getenv(name, str(default))))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    try:
        return max(minimum, float(os.getenv(name, str(default))))
    except (TypeError, ValueError):
        return default


# LLM Selection Configuration
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "gemini").lower()  # Options: gemini, openai, openrouter, ollama
LLM_MODEL = os.getenv("LLM_MODEL")  # Optional override
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")

GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")

# Provider specific keys are used when the generic one is not set
PROVIDER_API_KEYS = {
    "gemini": GOOGLE_API_KEY,
    "openai": OPENAI_API_KEY,
    "openrouter": OPENROUTER_API_KEY,
}
# LLM_API_KEY belongs to LLM_PROVIDER only; other providers use their own key
LLM_GENERIC_API_KEY = os.getenv("LLM_API_KEY")

# Plan generation
PLAN_TEMPERATURE = _env_float("PLAN_TEMPERATURE", 0.2)
PLAN_MAX_OUTPUT_TOKENS = _env_int("PLAN_MAX_OUTPUT_TOKENS", 4000, minimum=256)
PLAN_MAX_RETRIES = _env_int("PLAN_MAX_RETRIES", 3)
PLAN_RETRY_BASE_DELAY = _env_float("PLAN_RETRY_BASE_DELAY", 1.0)
PLAN_ATTEMPT_TIMEOUT = _env_float("PLAN_ATTEMPT_TIMEOUT", 60.0, minimum=1.0)

# Langfuse tracing is only switched on when both keys are present
LANGFUSE_ENABLED = bool(os.getenv("LANGFUSE_PUBLIC_KEY") and os.getenv("LANGFUSE_SECRET_KEY"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def api_key_for(provider: str) -> str:
    provider = provider.lower()
    if provider == LLM_PROVIDER and LLM_GENERIC_API_KEY:
        return LLM_GENERIC_API_KEY
    return PROVIDER_API_KEYS.get(provider)


def require_llm_api_key(provider: str = None, api_key: str = None) -> str:
    """Return the API key for a remote provider or fail fast.

    Ollama runs locally and needs no key, so an empty string is returned for it.
    """
    provider = (provider or LLM_PROVIDER).lower()
    if provider == "ollama":
        return ""

    key = api_key if api_key is not None else api_key_for(provider)
    if not key:
        raise ConfigurationError(
            f"Missing API key for LLM provider '{provider}'. "
            "Set LLM_API_KEY or the provider specific key in the environment."
        )
    return key
