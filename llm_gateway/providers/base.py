# declares the provider contract every backend adapter implements
# lets the registry and the agent stay backend-agnostic (local/openai/google...)

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

import httpx


# raised only while building an adapter; invoke/stream/probe never raise past the adapter
class ProviderError(Exception):
    pass


# everything a reachable-but-wrong upstream can make an adapter raise
UPSTREAM_ERRORS = (
    httpx.HTTPError,
    ProviderError,
    ValueError,
    KeyError,
    IndexError,
    TypeError,
    AttributeError,
)


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    model: str
    temperature: float = 0.7
    base_url: Optional[str] = None
    max_tokens: Optional[int] = None
    api_key: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    provider: str


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class ProviderReply:
    """Complete single-shot response from a backend.

    ``error`` is set when the upstream call failed; ``content`` then holds
    the human-readable failure text and ``finish_reason`` is ``"error"``.
    """
    content: str
    finish_reason: str = "stop"
    usage: Usage = field(default_factory=Usage)
    error: Optional[str] = None


class ErrorFragment(str):
    """Terminal stream fragment carrying an upstream failure message."""


@runtime_checkable
class LLMProvider(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def config(self) -> ProviderConfig: ...

    def models(self) -> List[ModelInfo]: ...

    async def invoke(
        self,
        messages: Sequence[Message],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ProviderReply: ...

    def invoke_stream(
        self,
        messages: Sequence[Message],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]: ...

    async def is_available(self) -> bool: ...

    async def aclose(self) -> None: ...


def single_model(config: ProviderConfig) -> List[ModelInfo]:
    return [ModelInfo(id=config.model, name=config.model, provider=config.name)]


def invoke_error_message(backend: str, exc: BaseException) -> str:
    return f"Error invoking {backend} LLM: {exc}"


def error_reply(backend: str, exc: BaseException) -> ProviderReply:
    msg = invoke_error_message(backend, exc)
    return ProviderReply(content=msg, finish_reason="error", error=msg)


def expect_object(data: Any, backend: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ProviderError(f"Unexpected response type from {backend}: {type(data).__name__}")
    return data


def build_timeout(config: ProviderConfig, default: float = 120.0) -> httpx.Timeout:
    return httpx.Timeout(float(config.extra.get("timeout", default)), connect=10.0)


async def aiter_sse_data(response: httpx.Response) -> AsyncIterator[Dict[str, Any]]:
    """Decode ``data:`` lines of a Server-Sent-Events body until ``[DONE]``."""
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data:
            continue
        if data == "[DONE]":
            return
        try:
            yield json.loads(data)
        except json.JSONDecodeError:
            continue
