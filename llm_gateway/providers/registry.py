import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from llm_gateway.providers.base import LLMProvider, ModelInfo, ProviderConfig
from llm_gateway.providers.factory import (
    LOCAL_KIND,
    PROVIDER_FACTORIES,
    ProviderFactory,
    build_provider,
)

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Lookup table from provider name and model id to adapter.

    Populated once at startup by ``initialize_providers`` and only read
    from the request path afterwards. Registering a name or model id
    that already exists overwrites the earlier entry.
    """

    def __init__(self) -> None:
        self._providers: Dict[str, LLMProvider] = {}
        self._model_to_provider: Dict[str, str] = {}

    def register(self, provider: LLMProvider) -> None:
        name = provider.name
        self._providers[name] = provider
        for model in provider.models():
            self._model_to_provider[model.id] = name

    def get_provider(self, name: str) -> Optional[LLMProvider]:
        return self._providers.get(name)

    def get_provider_by_model(self, model_id: str) -> Optional[LLMProvider]:
        name = self._model_to_provider.get(model_id)
        if name is None:
            return None
        return self._providers.get(name)

    def providers(self) -> Mapping[str, LLMProvider]:
        return MappingProxyType(self._providers)

    def list_models(self) -> List[ModelInfo]:
        # only models whose mapping still points at the declaring provider
        models: List[ModelInfo] = []
        for name, provider in self._providers.items():
            for model in provider.models():
                if self._model_to_provider.get(model.id) == name:
                    models.append(model)
        return models

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)


async def initialize_providers(
    configs: Mapping[str, ProviderConfig],
    registry: ProviderRegistry,
    factories: Dict[str, ProviderFactory] = PROVIDER_FACTORIES,
) -> List[LLMProvider]:
    """Build, probe and register every configured backend.

    The local backend is always attempted; hosted backends only when their
    config carries an API key. A backend that fails to build, fails its
    probe, or reports itself unavailable is logged and skipped.

    Returns every adapter that was constructed, registered or not, so the
    caller owns closing them.
    """
    constructed: List[LLMProvider] = []
    for kind, config in configs.items():
        if kind != LOCAL_KIND and not config.api_key:
            logger.info("skipping provider %s: no API key configured", kind)
            continue
        try:
            provider = build_provider(kind, config, factories)
        except Exception:
            logger.exception("provider %s initialization error", kind)
            continue
        constructed.append(provider)

        try:
            available = await provider.is_available()
        except Exception:
            logger.exception("provider %s availability probe failed", kind)
            continue

        if available:
            registry.register(provider)
            logger.info("registered provider %s with model %s", provider.name, config.model)
        else:
            logger.warning(
                "provider %s is not available; check its configuration and service state", kind
            )
    return constructed
