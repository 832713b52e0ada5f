# centralized configuration loader
# runs load_dotenv() to read .env
# decouples code from environment so we can swap models/hosts/keys without code change

import os
from typing import Dict, Optional

from dotenv import load_dotenv

from llm_gateway.agents.general import load_system_prompt
from llm_gateway.providers.base import ProviderConfig

load_dotenv()

_TRUTHY = {"1", "true", "yes", "y"}


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


# Application
APP_NAME = os.getenv("APP_NAME", "LLM Gateway")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
SYSTEM_PROMPT = os.getenv("SYSTEM_PROMPT") or load_system_prompt()
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "120"))

# Local inference (always attempted)
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://127.0.0.1:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1:8b-instruct-q4_K_M")
OLLAMA_TEMPERATURE = float(os.getenv("OLLAMA_TEMPERATURE", "0.7"))
OLLAMA_MAX_TOKENS = _optional_int("OLLAMA_MAX_TOKENS")
CTX_TOKENS = int(os.getenv("CTX_TOKENS", "2048"))
OLLAMA_PULL_MODEL = _flag("OLLAMA_PULL_MODEL", "false")

# Hosted API A: OpenAI-compatible wire (OpenRouter by default)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY") or None
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "openai/gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://openrouter.ai/api/v1")
OPENAI_TEMPERATURE = float(os.getenv("OPENAI_TEMPERATURE", "0.7"))
OPENAI_MAX_TOKENS = _optional_int("OPENAI_MAX_TOKENS")

# Hosted API B: Google Gemini
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY") or None
GOOGLE_MODEL = os.getenv("GOOGLE_MODEL", "gemini-1.5-flash")
GOOGLE_BASE_URL = os.getenv("GOOGLE_BASE_URL", "https://generativelanguage.googleapis.com")
GOOGLE_TEMPERATURE = float(os.getenv("GOOGLE_TEMPERATURE", "0.7"))
GOOGLE_MAX_TOKENS = _optional_int("GOOGLE_MAX_TOKENS")

# Retrieval
ENABLE_RETRIEVAL = _flag("ENABLE_RETRIEVAL", "true")
DOCUMENTS_DIR = os.getenv("DOCUMENTS_DIR") or None
RETRIEVAL_MIN_SCORE = float(os.getenv("RETRIEVAL_MIN_SCORE", "0.2"))


def provider_configs() -> Dict[str, ProviderConfig]:
    """Backend kind -> config. Hosted kinds only appear when a key is set."""
    configs: Dict[str, ProviderConfig] = {
        "ollama": ProviderConfig(
            name="ollama",
            base_url=OLLAMA_HOST,
            model=OLLAMA_MODEL,
            temperature=OLLAMA_TEMPERATURE,
            max_tokens=OLLAMA_MAX_TOKENS,
            extra={
                "num_ctx": CTX_TOKENS,
                "pull_model": OLLAMA_PULL_MODEL,
                "timeout": REQUEST_TIMEOUT,
            },
        ),
    }
    if OPENAI_API_KEY:
        configs["openai"] = ProviderConfig(
            name="openai",
            base_url=OPENAI_BASE_URL,
            model=OPENAI_MODEL,
            temperature=OPENAI_TEMPERATURE,
            max_tokens=OPENAI_MAX_TOKENS,
            api_key=OPENAI_API_KEY,
            extra={"timeout": REQUEST_TIMEOUT},
        )
    if GOOGLE_API_KEY:
        configs["google"] = ProviderConfig(
            name="google",
            base_url=GOOGLE_BASE_URL,
            model=GOOGLE_MODEL,
            temperature=GOOGLE_TEMPERATURE,
            max_tokens=GOOGLE_MAX_TOKENS,
            api_key=GOOGLE_API_KEY,
            extra={"timeout": REQUEST_TIMEOUT},
        )
    return configs
