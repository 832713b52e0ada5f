# tests/test_providers_ollama.py
import json

import httpx
import pytest
import respx

from llm_gateway.providers.base import ErrorFragment, Message, ProviderConfig, Role
from llm_gateway.providers.ollama import OllamaProvider

BASE = "http://127.0.0.1:11434"
MODEL = "qwen2.5:3b-instruct"
MESSAGES = [Message(Role.SYSTEM, "sys"), Message(Role.USER, "hi")]


def make_provider(**extra) -> OllamaProvider:
    return OllamaProvider(
        ProviderConfig(name="ollama", base_url=BASE, model=MODEL, temperature=0.5, extra=extra)
    )


def test_models_lists_configured_model():
    p = make_provider()
    [m] = p.models()
    assert (m.id, m.name, m.provider) == (MODEL, MODEL, "ollama")


@pytest.mark.asyncio
@respx.mock
async def test_nonstream_ok():
    # Returns content, finish reason and Ollama's own token counts.
    route = respx.post(f"{BASE}/api/chat").mock(
        return_value=httpx.Response(
            200,
            json={
                "message": {"role": "assistant", "content": "hello"},
                "done": True,
                "done_reason": "stop",
                "prompt_eval_count": 5,
                "eval_count": 3,
            },
        )
    )
    p = make_provider(num_ctx=1024)
    reply = await p.invoke(MESSAGES, max_tokens=64)
    assert reply.content == "hello"
    assert reply.finish_reason == "stop"
    assert (reply.usage.prompt_tokens, reply.usage.completion_tokens, reply.usage.total_tokens) == (5, 3, 8)
    assert reply.error is None

    sent = json.loads(route.calls.last.request.content)
    assert sent["model"] == MODEL
    assert sent["stream"] is False
    assert sent["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]
    assert sent["options"] == {"temperature": 0.5, "num_ctx": 1024, "num_predict": 64}
    await p.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_nonstream_error_field_is_swallowed():
    # An "error" field never raises; it becomes an error reply.
    respx.post(f"{BASE}/api/chat").mock(
        return_value=httpx.Response(200, json={"error": "model not loaded"})
    )
    reply = await make_provider().invoke(MESSAGES)
    assert reply.error
    assert reply.finish_reason == "error"
    assert reply.content.startswith("Error invoking Ollama LLM:")
    assert "model not loaded" in reply.content


@pytest.mark.asyncio
@respx.mock
async def test_nonstream_http_error_is_swallowed():
    respx.post(f"{BASE}/api/chat").mock(return_value=httpx.Response(500, text="boom"))
    reply = await make_provider().invoke(MESSAGES)
    assert reply.error
    assert reply.content.startswith("Error invoking Ollama LLM:")


@pytest.mark.asyncio
@respx.mock
async def test_stream_ok():
    # Simulate chunked lines as Ollama's /api/chat stream does
    chunks = [
        b'{"message":{"role":"assistant","content":"he"},"done":false}\n',
        b'{"message":{"role":"assistant","content":"llo"},"done":false}\n',
        b'{"message":{"role":"assistant","content":""},"done":true,"done_reason":"stop"}\n',
    ]
    respx.post(f"{BASE}/api/chat").mock(
        return_value=httpx.Response(200, content=b"".join(chunks), headers={"Content-Type": "application/x-ndjson"})
    )
    acc = [c async for c in make_provider().invoke_stream(MESSAGES)]
    assert acc == ["he", "llo"]


@pytest.mark.asyncio
@respx.mock
async def test_stream_error_mid_yields_one_error_fragment():
    chunks = [
        b'{"message":{"role":"assistant","content":"he"},"done":false}\n',
        b'{"error":"boom"}\n',
        b'{"message":{"role":"assistant","content":"never"},"done":false}\n',
    ]
    respx.post(f"{BASE}/api/chat").mock(
        return_value=httpx.Response(200, content=b"".join(chunks), headers={"Content-Type": "application/x-ndjson"})
    )
    acc = [c async for c in make_provider().invoke_stream(MESSAGES)]
    assert acc[0] == "he"
    assert len(acc) == 2
    assert isinstance(acc[1], ErrorFragment)
    assert "boom" in acc[1]


@pytest.mark.asyncio
@respx.mock
async def test_stream_connection_error_yields_error_fragment():
    respx.post(f"{BASE}/api/chat").mock(side_effect=httpx.ConnectError("refused"))
    acc = [c async for c in make_provider().invoke_stream(MESSAGES)]
    assert len(acc) == 1
    assert isinstance(acc[0], ErrorFragment)


@pytest.mark.asyncio
@respx.mock
async def test_is_available_when_model_listed():
    respx.get(f"{BASE}/api/tags").mock(
        return_value=httpx.Response(200, json={"models": [{"name": MODEL}, {"name": "other:latest"}]})
    )
    p = make_provider()
    assert await p.is_available() is True
    ok, message = await p.check_health()
    assert ok and message == f"model: {MODEL}"


@pytest.mark.asyncio
@respx.mock
async def test_is_available_false_when_model_missing():
    respx.get(f"{BASE}/api/tags").mock(
        return_value=httpx.Response(200, json={"models": [{"name": "other:latest"}]})
    )
    p = make_provider()
    assert await p.is_available() is False
    ok, message = await p.check_health()
    assert not ok
    assert "other:latest" in message


@pytest.mark.asyncio
@respx.mock
async def test_is_available_pulls_missing_model_when_enabled():
    respx.get(f"{BASE}/api/tags").mock(return_value=httpx.Response(200, json={"models": []}))
    pull = respx.post(f"{BASE}/api/pull").mock(return_value=httpx.Response(200, json={"status": "success"}))
    assert await make_provider(pull_model=True).is_available() is True
    assert json.loads(pull.calls.last.request.content) == {"model": MODEL, "stream": False}


@pytest.mark.asyncio
@respx.mock
async def test_is_available_never_raises_on_connection_error():
    respx.get(f"{BASE}/api/tags").mock(side_effect=httpx.ConnectError("refused"))
    assert await make_provider().is_available() is False


@pytest.mark.asyncio
@respx.mock
async def test_stream_non_object_line_yields_error_fragment():
    # A line that parses as JSON but is not an object ends the stream with an error.
    chunks = [
        b'{"message":{"role":"assistant","content":"he"},"done":false}\n',
        b'["x"]\n',
    ]
    respx.post(f"{BASE}/api/chat").mock(
        return_value=httpx.Response(200, content=b"".join(chunks), headers={"Content-Type": "application/x-ndjson"})
    )
    acc = [c async for c in make_provider().invoke_stream(MESSAGES)]
    assert acc[0] == "he"
    assert len(acc) == 2
    assert isinstance(acc[1], ErrorFragment)
    assert acc[1].startswith("Error invoking Ollama LLM:")


@pytest.mark.asyncio
@respx.mock
@pytest.mark.parametrize("body", [["not", "an", "object"], {"message": "hi"}, {"message": {"content": "x"}, "eval_count": "many"}])
async def test_nonstream_malformed_body_is_error_reply(body):
    respx.post(f"{BASE}/api/chat").mock(return_value=httpx.Response(200, json=body))
    reply = await make_provider().invoke(MESSAGES)
    assert reply.error
    assert reply.finish_reason == "error"
    assert reply.content.startswith("Error invoking Ollama LLM:")


@pytest.mark.asyncio
@respx.mock
@pytest.mark.parametrize("body", [{"models": None}, ["x"], {"models": ["bare-name"]}])
async def test_health_with_malformed_tags_reports_down(body):
    respx.get(f"{BASE}/api/tags").mock(return_value=httpx.Response(200, json=body))
    p = make_provider()
    assert await p.is_available() is False
    ok, message = await p.check_health()
    assert ok is False
    assert message


def test_config_extra_is_read_only():
    config = ProviderConfig(name="ollama", model=MODEL, extra={"num_ctx": 1024})
    with pytest.raises(TypeError):
        config.extra["num_ctx"] = 1
    assert config.extra["num_ctx"] == 1024


def test_config_extra_is_copied_from_caller():
    source = {"timeout": 5}
    config = ProviderConfig(name="ollama", model=MODEL, extra=source)
    source["timeout"] = 99
    assert config.extra["timeout"] == 5
