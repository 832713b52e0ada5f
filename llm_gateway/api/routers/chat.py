import logging
import time
from contextlib import aclosing
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from llm_gateway.agents.llm_agent import LLMAgent
from llm_gateway.api.deps import get_document_store, get_registry
from llm_gateway.api.errors import GatewayError, ModelNotFoundError, UpstreamError, error_response
from llm_gateway.providers.base import ErrorFragment
from llm_gateway.providers.registry import ProviderRegistry
from llm_gateway.schemas.chat import ChatCompletionRequest, new_completion_id
from llm_gateway.services.chat_service import PreparedQuery, prepare_agent
from llm_gateway.services.documents import DocumentStore
from llm_gateway.services.framing import (
    DONE_EVENT,
    STREAM_ERROR_MESSAGE,
    render_chunk,
    render_completion,
    sse_event,
)

router = APIRouter(prefix="/v1", tags=["chat"])
logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


async def _event_stream(
    agent: LLMAgent,
    prepared: PreparedQuery,
    request: Request,
    *,
    completion_id: str,
    model: str,
    created: int,
) -> AsyncIterator[str]:
    def event(content: Optional[str] = None, finish_reason: Optional[str] = None) -> str:
        return sse_event(
            render_chunk(
                completion_id=completion_id,
                model=model,
                created=created,
                content=content,
                finish_reason=finish_reason,
            )
        )

    received = 0
    # headers are already sent from here on; failures become chunks, never a status change
    try:
        stream = agent.process_query_stream(prepared.query, prepared.prior_turns)
        async with aclosing(stream) as fragments:
            async for fragment in fragments:
                if await request.is_disconnected():
                    logger.info("client disconnected, stopping stream")
                    return
                if isinstance(fragment, ErrorFragment):
                    logger.warning("provider stream ended with an error: %s", fragment)
                    yield event(str(fragment), "error")
                    break
                received += len(fragment)
                yield event(fragment)
    except Exception as e:
        logger.exception("streaming error occurred: %s", e)
        yield event(STREAM_ERROR_MESSAGE, "error")

    yield event(finish_reason="stop")
    yield DONE_EVENT
    logger.info("chat stream completed (%d chars)", received)


@router.post("/chat/completions", response_model=None)
async def chat_completions(
    req: ChatCompletionRequest,
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
    documents: Optional[DocumentStore] = Depends(get_document_store),
):
    logger.info(
        "chat request model=%s messages=%d temperature=%s stream=%s",
        req.model,
        len(req.messages),
        req.temperature,
        req.stream,
    )
    try:
        provider = registry.get_provider_by_model(req.model)
        if provider is None:
            raise ModelNotFoundError(req.model)

        agent, prepared = await prepare_agent(
            provider=provider,
            messages=[m.model_dump() for m in req.messages],
            documents=documents,
            temperature=req.temperature,
            max_tokens=req.max_tokens,
        )
        completion_id = new_completion_id()
        created = int(time.time())

        if req.stream:
            return StreamingResponse(
                _event_stream(
                    agent,
                    prepared,
                    request,
                    completion_id=completion_id,
                    model=req.model,
                    created=created,
                ),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        result = await agent.process_query(prepared.query, prepared.prior_turns)
        if not result.success or result.response is None:
            raise UpstreamError(result.error or "Error processing the query")
        logger.info("chat completed (%d chars)", len(result.response.content))
        return render_completion(
            result.response, completion_id=completion_id, model=req.model, created=created
        )
    except GatewayError as e:
        logger.warning("chat request failed: %s", e.message)
        return error_response(e)
    except Exception as e:
        logger.exception("error processing chat request")
        return error_response(GatewayError(str(e) or "Internal server error"))
