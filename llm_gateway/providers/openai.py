import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from llm_gateway.providers.base import (
    ErrorFragment,
    Message,
    ModelInfo,
    ProviderConfig,
    UPSTREAM_ERRORS,
    ProviderError,
    ProviderReply,
    Usage,
    aiter_sse_data,
    build_timeout,
    expect_object,
    error_reply,
    invoke_error_message,
    single_model,
)

logger = logging.getLogger(__name__)

BACKEND = "OpenAI"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAIProvider:
    """Any OpenAI-compatible /chat/completions endpoint (OpenRouter by default)."""

    def __init__(self, config: ProviderConfig) -> None:
        if not config.model:
            raise ProviderError("OpenAI provider requires a model")
        self._config = config
        headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else {}
        self._client = httpx.AsyncClient(
            base_url=config.base_url or DEFAULT_BASE_URL,
            headers=headers,
            timeout=build_timeout(config),
        )

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def models(self) -> List[ModelInfo]:
        return single_model(self._config)

    def _payload(
        self,
        messages: Sequence[Message],
        stream: bool,
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._config.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "temperature": self._config.temperature if temperature is None else temperature,
            "stream": stream,
        }
        budget = max_tokens if max_tokens is not None else self._config.max_tokens
        if budget is not None:
            payload["max_tokens"] = budget
        return payload

    async def invoke(
        self,
        messages: Sequence[Message],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ProviderReply:
        payload = self._payload(messages, False, temperature, max_tokens)
        try:
            r = await self._client.post("/chat/completions", json=payload)
            r.raise_for_status()
            data = expect_object(r.json(), BACKEND)
            if data.get("error"):
                raise ProviderError(f"OpenAI error: {data['error']}")
            choice = expect_object(data["choices"][0], BACKEND)
            content = expect_object(choice.get("message") or {}, BACKEND).get("content") or ""
            if not isinstance(content, str):
                raise ProviderError("Unexpected response type from OpenAI.")
            usage = expect_object(data.get("usage") or {}, BACKEND)
            prompt_tokens = int(usage.get("prompt_tokens") or 0)
            completion_tokens = int(usage.get("completion_tokens") or 0)
            total_tokens = int(usage.get("total_tokens") or prompt_tokens + completion_tokens)
        except UPSTREAM_ERRORS as e:
            logger.warning("openai invoke failed: %s", e)
            return error_reply(BACKEND, e)

        return ProviderReply(
            content=content,
            finish_reason=choice.get("finish_reason") or "stop",
            usage=Usage(prompt_tokens, completion_tokens, total_tokens),
        )

    async def invoke_stream(
        self,
        messages: Sequence[Message],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, True, temperature, max_tokens)
        try:
            async with self._client.stream("POST", "/chat/completions", json=payload) as r:
                r.raise_for_status()
                async for event in aiter_sse_data(r):
                    data = expect_object(event, BACKEND)
                    if data.get("error"):
                        raise ProviderError(f"OpenAI error: {data['error']}")
                    for choice in data.get("choices") or []:
                        delta = expect_object(expect_object(choice, BACKEND).get("delta") or {}, BACKEND)
                        content = delta.get("content")
                        if isinstance(content, str) and content:
                            yield content
        except UPSTREAM_ERRORS as e:
            logger.warning("openai stream failed: %s", e)
            yield ErrorFragment(invoke_error_message(BACKEND, e))

    async def is_available(self) -> bool:
        # presence only; validity is discovered on first use
        if not self._config.api_key:
            logger.error("openai provider unavailable: API key is missing")
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
