from typing import Callable, Dict

from llm_gateway.providers.base import LLMProvider, ProviderConfig, ProviderError
from llm_gateway.providers.google import GoogleProvider
from llm_gateway.providers.ollama import OllamaProvider
from llm_gateway.providers.openai import OpenAIProvider

ProviderFactory = Callable[[ProviderConfig], LLMProvider]

# backend kind -> adapter constructor
PROVIDER_FACTORIES: Dict[str, ProviderFactory] = {
    "ollama": OllamaProvider,
    "openai": OpenAIProvider,
    "google": GoogleProvider,
}

LOCAL_KIND = "ollama"


def build_provider(
    kind: str,
    config: ProviderConfig,
    factories: Dict[str, ProviderFactory] = PROVIDER_FACTORIES,
) -> LLMProvider:
    factory = factories.get(kind)
    if factory is None:
        raise ProviderError(f"Unknown provider: {kind}")
    return factory(config)
