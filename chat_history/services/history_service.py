"""Service layer for the stored chat history list."""

import structlog

from chat_history.core.exceptions import ChatNotFoundError, StoreUnavailableError
from chat_history.repositories.chat_repo import ChatRepository
from chat_history.schemas.chat_schema import ChatSession, ChatSummary
from chat_history.services.chat_service import ChatRegistry

logger = structlog.get_logger()


class HistoryService:
    """Lists, loads and deletes stored chats."""

    def __init__(self, chat_repo: ChatRepository | None, registry: ChatRegistry) -> None:
        self._chat_repo = chat_repo
        self._registry = registry

    @property
    def _repo(self) -> ChatRepository:
        if self._chat_repo is None:
            raise StoreUnavailableError()
        return self._chat_repo

    async def list_chats(self) -> list[ChatSummary]:
        """All stored chats, most recently updated first."""
        chats = await self._repo.get_all()
        chats.sort(key=lambda chat: chat.timestamp, reverse=True)
        return [ChatSummary.model_validate(chat, from_attributes=True) for chat in chats]

    async def get_chat(self, route_id: str) -> ChatSession:
        """Load a stored chat by primary id or URL id."""
        chat = await self._repo.get_by_either_id(route_id)
        if chat is None:
            raise ChatNotFoundError()
        return chat

    async def delete_chat(self, chat_id: str) -> None:
        """Delete a stored chat by primary id and close it if it is active."""
        await self._repo.delete_by_id(chat_id)
        self._registry.forget(chat_id)
        logger.info("Chat deleted", chat_id=chat_id)
