import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from llm_gateway.api.deps import get_registry
from llm_gateway.core import config
from llm_gateway.providers.base import LLMProvider
from llm_gateway.providers.factory import LOCAL_KIND
from llm_gateway.providers.ollama import OllamaProvider
from llm_gateway.providers.registry import ProviderRegistry
from llm_gateway.schemas.system import HealthResponse, ModelCard, ModelsListResponse, ServiceStatus

router = APIRouter(tags=["meta"])
logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _probe(provider: LLMProvider) -> Tuple[bool, str]:
    if isinstance(provider, OllamaProvider):
        return await provider.check_health()
    ok = await provider.is_available()
    return ok, f"model: {provider.config.model}" if ok else "provider unavailable"


@router.get("/")
def root() -> dict:
    return {
        "name": config.APP_NAME,
        "version": config.APP_VERSION,
        "status": "online",
        "endpoints": {
            "health": {"method": "GET", "path": "/health"},
            "models": {"method": "GET", "path": "/v1/models"},
            "chat": {"method": "POST", "path": "/v1/chat/completions"},
        },
    }


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, registry: ProviderRegistry = Depends(get_registry)):
    try:
        local: Optional[LLMProvider] = request.app.state.local_provider
        services: Dict[str, ServiceStatus] = {}
        if local is None:
            local_ok, message = False, "local provider could not be constructed"
        else:
            local_ok, message = await _probe(local)
        services[local.name if local else LOCAL_KIND] = ServiceStatus(
            status="up" if local_ok else "down", message=message
        )

        for name, provider in registry.providers().items():
            if local is not None and name == local.name:
                continue
            ok = await provider.is_available()
            services[name] = ServiceStatus(
                status="up" if ok else "down", message=f"model: {provider.config.model}"
            )

        return HealthResponse(
            status="healthy" if local_ok else "degraded",
            version=config.APP_VERSION,
            timestamp=_timestamp(),
            services=services,
        )
    except Exception:
        logger.exception("error computing health status")
        body = HealthResponse(
            status="unhealthy", version=config.APP_VERSION, timestamp=_timestamp(), services={}
        )
        return JSONResponse(status_code=500, content=body.model_dump())


@router.get("/v1/models", response_model=ModelsListResponse)
def list_models(request: Request, registry: ProviderRegistry = Depends(get_registry)):
    created = request.app.state.started_at
    return ModelsListResponse(
        data=[
            ModelCard(id=m.id, created=created, owned_by=m.provider)
            for m in registry.list_models()
        ]
    )
