# llm_gateway/main.py
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from llm_gateway.api.errors import setup_exception_handlers
from llm_gateway.api.routers.chat import router as chat_router
from llm_gateway.api.routers.system import router as system_router
from llm_gateway.core import config
from llm_gateway.providers.base import LLMProvider
from llm_gateway.providers.factory import LOCAL_KIND
from llm_gateway.providers.registry import ProviderRegistry, initialize_providers
from llm_gateway.services.documents import DocumentStore, InMemoryDocumentStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@asynccontextmanager
async def lifespan(app: FastAPI):
    constructed: List[LLMProvider] = []
    if app.state.registry is None:
        configs = config.provider_configs()
        registry = ProviderRegistry()
        constructed = await initialize_providers(configs, registry)
        local_name = configs[LOCAL_KIND].name if LOCAL_KIND in configs else None
        app.state.local_provider = next((p for p in constructed if p.name == local_name), None)
        app.state.registry = registry
        logger.info("%d provider(s) ready", len(registry))

    # adapters are closed even when startup fails past this point
    try:
        if app.state.document_store is None and config.ENABLE_RETRIEVAL:
            store = InMemoryDocumentStore(min_score=config.RETRIEVAL_MIN_SCORE)
            if config.DOCUMENTS_DIR:
                loaded = await store.load_directory(config.DOCUMENTS_DIR)
                logger.info("loaded %d document(s) from %s", loaded, config.DOCUMENTS_DIR)
            app.state.document_store = store

        yield
    finally:
        for provider in constructed:
            await provider.aclose()
        logger.info("closing server")


def create_app(
    *,
    registry: Optional[ProviderRegistry] = None,
    document_store: Optional[DocumentStore] = None,
    local_provider: Optional[LLMProvider] = None,
) -> FastAPI:
    app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Shared objects live on app.state and reach routers through Depends().
    # A registry passed in here is used as-is; otherwise lifespan builds it once.
    app.state.registry = registry
    app.state.document_store = document_store
    app.state.local_provider = local_provider
    app.state.started_at = int(time.time())

    setup_exception_handlers(app)

    # Routers
    app.include_router(system_router)
    app.include_router(chat_router)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format=LOG_FORMAT)
    try:
        uvicorn.run(
            app,
            host=config.API_HOST,
            port=config.API_PORT,
            log_level=config.LOG_LEVEL.lower(),
        )
    except Exception:
        logger.exception("failed to start the server")
        sys.exit(1)


if __name__ == "__main__":
    run()
