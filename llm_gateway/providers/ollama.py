import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

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
    build_timeout,
    expect_object,
    error_reply,
    invoke_error_message,
    single_model,
)

logger = logging.getLogger(__name__)

BACKEND = "Ollama"
DEFAULT_HOST = "http://127.0.0.1:11434"


class OllamaProvider:
    """Local inference server reached over its native /api/chat endpoint."""

    def __init__(self, config: ProviderConfig) -> None:
        if not config.model:
            raise ProviderError("Ollama provider requires a model")
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url or DEFAULT_HOST,
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
        options: Dict[str, Any] = {
            "temperature": self._config.temperature if temperature is None else temperature,
        }
        num_ctx = self._config.extra.get("num_ctx")
        if num_ctx:
            options["num_ctx"] = num_ctx
        budget = max_tokens if max_tokens is not None else self._config.max_tokens
        if budget is not None:
            options["num_predict"] = budget
        return {
            "model": self._config.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "stream": stream,
            "options": options,
        }

    async def invoke(
        self,
        messages: Sequence[Message],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ProviderReply:
        payload = self._payload(messages, False, temperature, max_tokens)
        try:
            r = await self._client.post("/api/chat", json=payload)
            r.raise_for_status()
            data = expect_object(r.json(), BACKEND)
            err = data.get("error")
            if isinstance(err, str) and err:
                raise ProviderError(f"Ollama error: {err}")
            content = expect_object(data.get("message") or {}, BACKEND).get("content", "")
            if not isinstance(content, str):
                raise ProviderError("Unexpected response type from Ollama.")
            prompt_tokens = int(data.get("prompt_eval_count") or 0)
            completion_tokens = int(data.get("eval_count") or 0)
        except UPSTREAM_ERRORS as e:
            logger.warning("ollama invoke failed: %s", e)
            return error_reply(BACKEND, e)

        return ProviderReply(
            content=content,
            finish_reason=data.get("done_reason") or "stop",
            usage=Usage(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens),
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
            async with self._client.stream("POST", "/api/chat", json=payload) as r:
                r.raise_for_status()
                async for line in r.aiter_lines():
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    data = expect_object(data, BACKEND)
                    if data.get("error"):
                        raise ProviderError(f"Ollama error: {data['error']}")
                    content = expect_object(data.get("message") or {}, BACKEND).get("content")
                    if isinstance(content, str) and content:
                        yield content
                    if data.get("done"):
                        break
        except UPSTREAM_ERRORS as e:
            logger.warning("ollama stream failed: %s", e)
            yield ErrorFragment(invoke_error_message(BACKEND, e))

    async def check_health(self) -> Tuple[bool, str]:
        """Report whether the configured model is present on the server."""
        try:
            r = await self._client.get("/api/tags")
            r.raise_for_status()
            models = expect_object(r.json(), BACKEND).get("models") or []
            names = [m.get("name", "") for m in models if isinstance(m, dict)]
        except UPSTREAM_ERRORS as e:
            return False, f"Could not connect to Ollama: {e}"

        model = self._config.model
        if model in names or f"{model}:latest" in names:
            return True, f"model: {model}"
        available = ", ".join(names) or "none"
        return False, f"model {model} not found. Available models: {available}"

    async def _pull_model(self) -> bool:
        logger.info("pulling ollama model %s", self._config.model)
        try:
            r = await self._client.post(
                "/api/pull", json={"model": self._config.model, "stream": False}
            )
            r.raise_for_status()
            return expect_object(r.json(), BACKEND).get("status") == "success"
        except UPSTREAM_ERRORS as e:
            logger.warning("ollama pull of %s failed: %s", self._config.model, e)
            return False

    async def is_available(self) -> bool:
        available, message = await self.check_health()
        if available:
            return True
        if self._config.extra.get("pull_model"):
            return await self._pull_model()
        logger.warning("ollama unavailable: %s", message)
        return False

    async def aclose(self) -> None:
        await self._client.aclose()
