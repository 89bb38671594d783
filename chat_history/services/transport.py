"""Streaming transport: an append-only message list fed by a LangChain chat model."""

from collections.abc import AsyncGenerator, Iterable

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from chat_history.core.exceptions import StreamInProgressError
from chat_history.schemas.chat_schema import Message

logger = structlog.get_logger()


def _chunk_text(chunk: BaseMessage) -> str:
    """Text of a streamed chunk; Anthropic chunks may carry content blocks."""
    content = chunk.content
    if isinstance(content, str):
        return content
    return "".join(
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
    )


class ChatTransport:
    """Owns the message buffer of one conversation.

    Only fully received turns are ever appended. The assistant reply being
    streamed lives in a private buffer until the model finishes, so an abort
    or a model error leaves ``messages`` exactly as it was before the turn.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        initial_messages: Iterable[Message] = (),
        system_prompt: str | None = None,
    ) -> None:
        self._llm = llm
        self._system_prompt = system_prompt
        self._messages: list[Message] = list(initial_messages)
        self._is_streaming = False
        self._abort_requested = False

    @property
    def messages(self) -> tuple[Message, ...]:
        """Read-only snapshot of the completed turns."""
        return tuple(self._messages)

    @property
    def is_streaming(self) -> bool:
        return self._is_streaming

    def append(self, message: Message) -> None:
        """Append a complete message. Not allowed while a reply is streaming."""
        if self._is_streaming:
            raise StreamInProgressError()
        self._messages.append(message)

    def abort(self) -> bool:
        """Stop the reply being streamed. Returns False if nothing was streaming."""
        if not self._is_streaming:
            return False
        self._abort_requested = True
        return True

    def to_langchain_messages(self) -> list[BaseMessage]:
        """Convert the completed turns to LangChain chat messages."""
        converted: list[BaseMessage] = []
        if self._system_prompt:
            converted.append(SystemMessage(content=self._system_prompt))
        for message in self._messages:
            if message.role == "user":
                converted.append(HumanMessage(content=message.content))
            else:
                converted.append(AIMessage(content=message.content))
        return converted

    async def stream_reply(self) -> AsyncGenerator[str, None]:
        """Stream the assistant reply to the current messages, token by token.

        The completed reply is appended when the model stream ends. If the
        stream is aborted, raises, or the consumer stops iterating, nothing
        is appended.
        """
        if self._is_streaming:
            raise StreamInProgressError()

        self._is_streaming = True
        self._abort_requested = False
        chunks: list[str] = []
        completed = False
        try:
            async for chunk in self._llm.astream(self.to_langchain_messages()):
                if self._abort_requested:
                    break
                text = _chunk_text(chunk)
                if not text:
                    continue
                chunks.append(text)
                yield text
            else:
                completed = not self._abort_requested
        finally:
            self._is_streaming = False

        if completed:
            self._messages.append(Message(role="assistant", content="".join(chunks)))
        else:
            logger.info("Reply discarded", discarded_chars=sum(map(len, chunks)))

    @property
    def was_aborted(self) -> bool:
        """Whether the most recent reply was stopped before it completed."""
        return self._abort_requested
