# tests/conftest.py
import os
import logging
from typing import AsyncIterator, List, Optional, Sequence

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Ensure test-friendly env before config is imported
os.environ.setdefault("SYSTEM_PROMPT", "You are a test assistant.")
os.environ.setdefault("ENABLE_RETRIEVAL", "true")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("GOOGLE_API_KEY", None)

# IMPORTANT: import the app after envs are set
from llm_gateway.main import create_app
from llm_gateway.providers.base import (
    Message,
    ModelInfo,
    ProviderConfig,
    ProviderReply,
    Usage,
    single_model,
)
from llm_gateway.providers.registry import ProviderRegistry
from llm_gateway.services.documents import InMemoryDocumentStore


class StubProvider:
    """In-process provider that records what it was sent."""

    def __init__(
        self,
        name: str = "stub",
        model: str = "test-model",
        *,
        reply: Optional[ProviderReply] = None,
        fragments: Sequence[str] = (),
        available: bool = True,
        models: Optional[List[ModelInfo]] = None,
    ) -> None:
        self._config = ProviderConfig(name=name, model=model)
        self._reply = reply or ProviderReply(content="hello", usage=Usage(5, 3, 8))
        self._fragments = list(fragments)
        self._available = available
        self._models = models
        self.calls: List[List[Message]] = []
        self.kwargs: List[dict] = []
        self.closed = False
        self.stream_closed = False

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def models(self) -> List[ModelInfo]:
        return self._models if self._models is not None else single_model(self._config)

    async def invoke(self, messages, *, temperature=None, max_tokens=None) -> ProviderReply:
        self.calls.append(list(messages))
        self.kwargs.append({"temperature": temperature, "max_tokens": max_tokens})
        return self._reply

    async def invoke_stream(self, messages, *, temperature=None, max_tokens=None) -> AsyncIterator[str]:
        self.calls.append(list(messages))
        self.kwargs.append({"temperature": temperature, "max_tokens": max_tokens})
        try:
            for fragment in self._fragments:
                yield fragment
        finally:
            self.stream_closed = True

    async def is_available(self) -> bool:
        return self._available

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def stub_provider():
    return StubProvider(fragments=["He", "llo"])


@pytest.fixture
def registry(stub_provider):
    reg = ProviderRegistry()
    reg.register(stub_provider)
    return reg


@pytest.fixture
def document_store():
    return InMemoryDocumentStore(min_score=0.2)


@pytest_asyncio.fixture
async def app(registry, document_store, stub_provider):
    return create_app(registry=registry, document_store=document_store, local_provider=stub_provider)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def caplog_info(caplog):
    caplog.set_level(logging.INFO)
    return caplog
