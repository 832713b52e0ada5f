# OpenAI-compatible wire rendering: completion objects and SSE chunk framing

import time
from typing import Dict, Optional

from llm_gateway.providers.base import ProviderReply
from llm_gateway.schemas.chat import (
    AssistantMessage,
    ChatCompletionChunk,
    ChatCompletionResponse,
    Choice,
    ChunkChoice,
    UsageOut,
)

DONE_EVENT = "data: [DONE]\n\n"
STREAM_ERROR_MESSAGE = "\n\nSorry, an error occurred while processing your query."


def render_completion(
    reply: ProviderReply, *, completion_id: str, model: str, created: Optional[int] = None
) -> ChatCompletionResponse:
    # usage is the provider's own accounting
    return ChatCompletionResponse(
        id=completion_id,
        created=created if created is not None else int(time.time()),
        model=model,
        choices=[
            Choice(
                index=0,
                message=AssistantMessage(content=reply.content),
                finish_reason=reply.finish_reason,
            )
        ],
        usage=UsageOut(
            prompt_tokens=reply.usage.prompt_tokens,
            completion_tokens=reply.usage.completion_tokens,
            total_tokens=reply.usage.total_tokens,
        ),
    )


def render_chunk(
    *,
    completion_id: str,
    model: str,
    created: int,
    content: Optional[str] = None,
    finish_reason: Optional[str] = None,
) -> ChatCompletionChunk:
    delta: Dict[str, str] = {} if content is None else {"content": content}
    return ChatCompletionChunk(
        id=completion_id,
        created=created,
        model=model,
        choices=[ChunkChoice(index=0, delta=delta, finish_reason=finish_reason)],
    )


def sse_event(chunk: ChatCompletionChunk) -> str:
    return f"data: {chunk.model_dump_json()}\n\n"
