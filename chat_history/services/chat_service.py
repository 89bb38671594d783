"""Chat turn orchestration: transport, synchronizer and the active chat registry."""

import json
from collections import OrderedDict
from collections.abc import AsyncGenerator
from contextlib import aclosing
from dataclasses import dataclass

import structlog
from langchain_core.language_models import BaseChatModel

from chat_history.core.exceptions import AppException, ChatNotFoundError, ModelError
from chat_history.core.settings import ChatConfig
from chat_history.repositories.chat_repo import ChatRepository
from chat_history.schemas.chat_schema import (
    ChatRequest,
    HydrationResult,
    Message,
    StreamEvent,
)
from chat_history.services.file_modifications import compose_user_content
from chat_history.services.synchronizer import ChatSynchronizer
from chat_history.services.transport import ChatTransport

logger = structlog.get_logger()


def _error_event(exc: AppException) -> StreamEvent:
    return StreamEvent(
        event="error", data=json.dumps({"code": exc.code, "message": exc.message})
    )


@dataclass
class ActiveChat:
    """A conversation currently open in this process."""

    synchronizer: ChatSynchronizer
    transport: ChatTransport

    def ids(self) -> dict[str, str | None]:
        return {
            "id": self.synchronizer.chat_id,
            "urlId": self.synchronizer.url_id,
            "description": self.synchronizer.description,
        }


class ChatRegistry:
    """Process-wide lookup of active chats by primary id or URL id.

    Primary ids take precedence over URL ids, as in the store. At most
    ``max_active`` chats are kept; the least recently used chat that is not
    streaming is dropped first and will be hydrated again on its next turn.
    """

    def __init__(self, max_active: int = 64) -> None:
        self._max_active = max_active
        self._by_id: OrderedDict[str, ActiveChat] = OrderedDict()
        self._by_url_id: dict[str, ActiveChat] = {}

    def get_by_id(self, chat_id: str) -> ActiveChat | None:
        active = self._by_id.get(chat_id)
        if active is not None:
            self._by_id.move_to_end(chat_id)
        return active

    def get_by_url_id(self, url_id: str) -> ActiveChat | None:
        active = self._by_url_id.get(url_id)
        if active is not None and active.synchronizer.chat_id in self._by_id:
            self._by_id.move_to_end(active.synchronizer.chat_id)
        return active

    def get(self, route_id: str) -> ActiveChat | None:
        """Resolve a route id: primary id first, then URL id."""
        return self.get_by_id(route_id) or self.get_by_url_id(route_id)

    def register(self, active: ActiveChat) -> None:
        chat_id = active.synchronizer.chat_id
        if not chat_id:
            return
        self._by_id[chat_id] = active
        self._by_id.move_to_end(chat_id)
        url_id = active.synchronizer.url_id
        if url_id:
            self._by_url_id[url_id] = active
        self._evict(keep=chat_id)

    def forget(self, chat_id: str) -> None:
        """Drop the chat whose primary id is ``chat_id`` and its URL id alias."""
        active = self._by_id.pop(chat_id, None)
        if active is None:
            return
        url_id = active.synchronizer.url_id
        if url_id and self._by_url_id.get(url_id) is active:
            del self._by_url_id[url_id]

    def _evict(self, keep: str) -> None:
        while len(self._by_id) > self._max_active:
            idle = next(
                (
                    chat_id
                    for chat_id, active in self._by_id.items()
                    if chat_id != keep and not active.transport.is_streaming
                ),
                None,
            )
            if idle is None:
                return
            self.forget(idle)
            logger.debug("Active chat evicted", chat_id=idle)

    def __len__(self) -> int:
        return len(self._by_id)


class ChatService:
    """Runs chat turns against the model and keeps the store in step."""

    def __init__(
        self,
        llm: BaseChatModel,
        chat_repo: ChatRepository | None,
        registry: ChatRegistry,
        chat_config: ChatConfig,
        system_prompt: str | None = None,
    ) -> None:
        self._llm = llm
        self._chat_repo = chat_repo
        self._registry = registry
        self._chat_config = chat_config
        self._system_prompt = system_prompt

    async def open_chat(self, route_id: str | None) -> ActiveChat:
        """Return the active chat for ``route_id``, hydrating it on first use."""
        if route_id:
            active = self._registry.get_by_id(route_id)
            if active is None:
                active = self._registry.get_by_url_id(route_id)
                if active is not None and await self._is_stored_id(route_id):
                    # a stored chat whose primary id equals this URL id wins
                    active = None
            if active is not None:
                return active

        synchronizer = ChatSynchronizer(
            self._chat_repo,
            url_id_max_length=self._chat_config.url_id_max_length,
            description_max_length=self._chat_config.description_max_length,
        )
        hydration = await synchronizer.hydrate(route_id)
        active = ActiveChat(
            synchronizer=synchronizer,
            transport=ChatTransport(
                self._llm,
                initial_messages=hydration.initial_messages,
                system_prompt=self._system_prompt,
            ),
        )
        self._registry.register(active)
        return active

    async def hydrate(self, route_id: str | None) -> HydrationResult:
        """Initial messages and identifiers for the chat shell."""
        active = await self.open_chat(route_id)
        return HydrationResult(
            ready=True,
            initial_messages=list(active.transport.messages),
            id=active.synchronizer.chat_id,
            url_id=active.synchronizer.url_id,
            description=active.synchronizer.description,
        )

    async def begin_turn(self, request: ChatRequest) -> ActiveChat:
        """Append the user's message, with pending file edits embedded.

        Raises StreamInProgressError if a reply is still streaming.
        """
        active = await self.open_chat(request.chat_id)
        content = compose_user_content(request.message, request.file_modifications)
        active.transport.append(Message(role="user", content=content))
        return active

    async def stream_turn(self, active: ActiveChat) -> AsyncGenerator[StreamEvent, None]:
        """Persist the user turn, stream the reply, then persist the reply.

        Yields:
            StreamEvent objects; storage failures become ``error`` events and
            the conversation carries on.
        """
        async for event in self._persist(active):
            yield event

        try:
            async with aclosing(active.transport.stream_reply()) as tokens:
                async for token in tokens:
                    yield StreamEvent(event="token", data=token)
        except AppException as exc:
            logger.warning(
                "Reply refused", chat_id=active.synchronizer.chat_id, code=exc.code
            )
            yield _error_event(exc)
            return
        except Exception as exc:
            logger.exception(
                "Model failed to reply", chat_id=active.synchronizer.chat_id
            )
            yield _error_event(ModelError(str(exc) or type(exc).__name__))
            return

        if active.transport.was_aborted:
            yield StreamEvent(event="aborted", data=json.dumps(active.ids()))
            return

        async for event in self._persist(active):
            yield event

        yield StreamEvent(event="done", data=json.dumps(active.ids()))

    async def _is_stored_id(self, chat_id: str) -> bool:
        if self._chat_repo is None:
            return False
        return await self._chat_repo.get_by_id(chat_id) is not None

    def abort(self, route_id: str) -> bool:
        """Stop the reply streaming for ``route_id``."""
        active = self._registry.get(route_id)
        if active is None:
            raise ChatNotFoundError()
        return active.transport.abort()

    async def _persist(self, active: ActiveChat) -> AsyncGenerator[StreamEvent, None]:
        was_new = active.synchronizer.chat_id is None
        try:
            chat = await active.synchronizer.persist(active.transport.messages)
        except AppException as exc:
            logger.exception(
                "Failed to persist chat",
                chat_id=active.synchronizer.chat_id,
                code=exc.code,
            )
            yield _error_event(exc)
            return

        if chat is None and active.synchronizer.chat_id is None:
            return
        self._registry.register(active)
        if was_new:
            yield StreamEvent(event="chat", data=json.dumps(active.ids()))
