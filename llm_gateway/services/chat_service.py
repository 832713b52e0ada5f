import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from llm_gateway.agents.llm_agent import ChatMessage, LLMAgent
from llm_gateway.core import config
from llm_gateway.providers.base import LLMProvider
from llm_gateway.services.documents import DocumentStore

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "Use the following context from the user's documents when it is relevant:"


@dataclass
class PreparedQuery:
    system_prompt: str
    query: str
    prior_turns: List[ChatMessage] = field(default_factory=list)


def split_messages(
    messages: Sequence[ChatMessage], default_system: Optional[str] = None
) -> PreparedQuery:
    """Caller system messages replace the default prompt; the last message is the query."""
    if not messages:
        raise ValueError("At least one message is required")
    *history, last = messages
    system_parts = [m["content"] for m in history if m["role"] == "system"]
    prior = [m for m in history if m["role"] != "system"]
    system = "\n\n".join(system_parts) if system_parts else (default_system or config.SYSTEM_PROMPT)
    return PreparedQuery(system_prompt=system, query=last["content"], prior_turns=prior)


def augment_system_prompt(system: str, context: str) -> str:
    return f"{system}\n\n{CONTEXT_HEADER}\n{context}"


async def retrieve_context(store: Optional[DocumentStore], query: str) -> Optional[str]:
    if store is None or not config.ENABLE_RETRIEVAL:
        return None
    try:
        if not await store.has_documents():
            return None
        return await store.search_similar(query)
    except Exception:
        logger.exception("document retrieval failed; continuing without context")
        return None


async def prepare_agent(
    *,
    provider: LLMProvider,
    messages: Sequence[ChatMessage],
    documents: Optional[DocumentStore] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> tuple[LLMAgent, PreparedQuery]:
    prepared = split_messages(messages)
    context = await retrieve_context(documents, prepared.query)
    if context:
        logger.info("augmenting query with document context (%d chars)", len(context))
        prepared.system_prompt = augment_system_prompt(prepared.system_prompt, context)

    agent = LLMAgent(
        provider,
        system_prompt=prepared.system_prompt,
        temperature=temperature,
        max_tokens=max_tokens,
    )
    return agent, prepared
