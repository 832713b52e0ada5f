import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from llm_gateway.providers.base import (
    ErrorFragment,
    Message,
    ModelInfo,
    ProviderConfig,
    ProviderError,
    ProviderReply,
    Role,
    UPSTREAM_ERRORS,
    Usage,
    aiter_sse_data,
    build_timeout,
    expect_object,
    error_reply,
    invoke_error_message,
    single_model,
)

logger = logging.getLogger(__name__)

BACKEND = "Google"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"

_FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
    "BLOCKLIST": "content_filter",
    "PROHIBITED_CONTENT": "content_filter",
    "SPII": "content_filter",
    "IMAGE_SAFETY": "content_filter",
}


def _finish_reason(raw: Optional[str]) -> str:
    return _FINISH_REASONS.get(raw or "STOP", "stop")


def _first_candidate(data: Dict[str, Any]) -> Dict[str, Any]:
    candidates = data.get("candidates") or [{}]
    return expect_object(candidates[0], BACKEND)


def _candidate_text(data: Dict[str, Any]) -> str:
    content = expect_object(_first_candidate(data).get("content") or {}, BACKEND)
    parts = content.get("parts") or []
    return "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict))


class GoogleProvider:
    """Gemini models over the Generative Language REST API."""

    def __init__(self, config: ProviderConfig) -> None:
        if not config.model:
            raise ProviderError("Google provider requires a model")
        self._config = config
        headers = {"x-goog-api-key": config.api_key} if config.api_key else {}
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
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        system: List[str] = []
        contents: List[Dict[str, Any]] = []
        for m in messages:
            if m.role is Role.SYSTEM:
                system.append(m.content)
                continue
            role = "model" if m.role is Role.ASSISTANT else "user"
            contents.append({"role": role, "parts": [{"text": m.content}]})

        generation: Dict[str, Any] = {
            "temperature": self._config.temperature if temperature is None else temperature,
        }
        budget = max_tokens if max_tokens is not None else self._config.max_tokens
        if budget is not None:
            generation["maxOutputTokens"] = budget

        payload: Dict[str, Any] = {"contents": contents, "generationConfig": generation}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system)}]}
        return payload

    def _path(self, method: str) -> str:
        return f"/v1beta/models/{self._config.model}:{method}"

    async def invoke(
        self,
        messages: Sequence[Message],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ProviderReply:
        payload = self._payload(messages, temperature, max_tokens)
        try:
            r = await self._client.post(self._path("generateContent"), json=payload)
            r.raise_for_status()
            data = expect_object(r.json(), BACKEND)
            if data.get("error"):
                raise ProviderError(f"Google error: {data['error']}")
            content = _candidate_text(data)
            finish_reason = _finish_reason(_first_candidate(data).get("finishReason"))
            usage = expect_object(data.get("usageMetadata") or {}, BACKEND)
            prompt_tokens = int(usage.get("promptTokenCount") or 0)
            completion_tokens = int(usage.get("candidatesTokenCount") or 0)
            total_tokens = int(usage.get("totalTokenCount") or prompt_tokens + completion_tokens)
        except UPSTREAM_ERRORS as e:
            logger.warning("google invoke failed: %s", e)
            return error_reply(BACKEND, e)

        return ProviderReply(
            content=content,
            finish_reason=finish_reason,
            usage=Usage(prompt_tokens, completion_tokens, total_tokens),
        )

    async def invoke_stream(
        self,
        messages: Sequence[Message],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, temperature, max_tokens)
        try:
            async with self._client.stream(
                "POST",
                self._path("streamGenerateContent"),
                params={"alt": "sse"},
                json=payload,
            ) as r:
                r.raise_for_status()
                async for event in aiter_sse_data(r):
                    data = expect_object(event, BACKEND)
                    if data.get("error"):
                        raise ProviderError(f"Google error: {data['error']}")
                    text = _candidate_text(data)
                    if text:
                        yield text
        except UPSTREAM_ERRORS as e:
            logger.warning("google stream failed: %s", e)
            yield ErrorFragment(invoke_error_message(BACKEND, e))

    async def is_available(self) -> bool:
        if not self._config.api_key:
            logger.error("google provider unavailable: API key is missing")
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
