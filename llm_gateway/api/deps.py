from typing import Optional

from fastapi import Request

from llm_gateway.providers.registry import ProviderRegistry
from llm_gateway.services.documents import DocumentStore


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def get_document_store(request: Request) -> Optional[DocumentStore]:
    return request.app.state.document_store
