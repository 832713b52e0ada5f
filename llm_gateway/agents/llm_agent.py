import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence, TypedDict

from llm_gateway.core import config
from llm_gateway.providers.base import ErrorFragment, LLMProvider, Message, ProviderReply, Role

logger = logging.getLogger(__name__)


class ChatMessage(TypedDict):
    role: str
    content: str


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    response: Optional[ProviderReply] = None
    error: Optional[str] = None


def to_message(chat_message: ChatMessage) -> Message:
    role = chat_message["role"]
    if role == "system":
        return Message(Role.SYSTEM, chat_message["content"])
    if role == "user":
        return Message(Role.USER, chat_message["content"])
    if role == "assistant":
        return Message(Role.ASSISTANT, chat_message["content"])
    raise ValueError(f"Unknown message role: {role}")


class LLMAgent:
    """Drives one resolved provider for the lifetime of a single request.

    The message sequence sent upstream is always: one system message,
    then the prior turns in order, then the current user query.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        self._provider = provider
        self._system_prompt = system_prompt if system_prompt is not None else config.SYSTEM_PROMPT
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    def build_messages(
        self, user_query: str, prior_turns: Optional[Sequence[ChatMessage]] = None
    ) -> List[Message]:
        turns: List[ChatMessage] = [{"role": "system", "content": self._system_prompt}]
        turns.extend(prior_turns or [])
        turns.append({"role": "user", "content": user_query})
        return [to_message(t) for t in turns]

    async def process_query(
        self, user_query: str, prior_turns: Optional[Sequence[ChatMessage]] = None
    ) -> DispatchResult:
        try:
            messages = self.build_messages(user_query, prior_turns)
            reply = await self._provider.invoke(
                messages, temperature=self._temperature, max_tokens=self._max_tokens
            )
        except Exception as e:
            logger.exception("error processing query with provider %s", self._provider.name)
            return DispatchResult(success=False, error=str(e))

        if reply.error:
            logger.warning("provider %s returned an error: %s", self._provider.name, reply.error)
            return DispatchResult(success=False, response=reply, error=reply.error)
        return DispatchResult(success=True, response=reply)

    async def process_query_stream(
        self, user_query: str, prior_turns: Optional[Sequence[ChatMessage]] = None
    ) -> AsyncIterator[str]:
        """Forward the provider's fragments unchanged.

        A construction failure yields a single ErrorFragment. Stops after
        the first ErrorFragment from the provider. Closing this generator
        closes the upstream stream.
        """
        try:
            messages = self.build_messages(user_query, prior_turns)
        except Exception as e:
            logger.exception("error building stream for provider %s", self._provider.name)
            yield ErrorFragment(f"An error occurred while processing your query: {e}")
            return

        stream = self._provider.invoke_stream(
            messages, temperature=self._temperature, max_tokens=self._max_tokens
        )
        async with aclosing(stream) as fragments:
            async for fragment in fragments:
                yield fragment
                if isinstance(fragment, ErrorFragment):
                    return
