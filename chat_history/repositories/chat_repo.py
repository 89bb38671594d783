"""Chat repository: transactional CRUD and id allocation over the chats table.

Every method runs as one transaction in its own database session. Identifier
allocation assumes a single active writer per database file; two processes
allocating at the same time can both receive the same id.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, Select, delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError

from chat_history.core.database import StoreHandle
from chat_history.core.exceptions import ReadError, WriteError
from chat_history.models.chat import Chat
from chat_history.schemas.chat_schema import ChatSession, Message


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ChatRepository:
    """Encapsulates chat session queries against an opened store."""

    def __init__(self, store: StoreHandle) -> None:
        self._store = store

    async def get_all(self) -> list[ChatSession]:
        """Return every stored chat. Order is not guaranteed."""
        try:
            async with self._store.session_factory() as session:
                result = await session.execute(select(Chat))
                return [ChatSession.model_validate(row) for row in result.scalars()]
        except SQLAlchemyError as exc:
            raise ReadError(f"Failed to list chats: {exc}") from exc

    async def get_by_id(self, chat_id: str) -> ChatSession | None:
        """Find a chat by its primary id."""
        return await self._get_one(Chat.id == chat_id)

    async def get_by_url_id(self, url_id: str) -> ChatSession | None:
        """Find a chat by its URL id."""
        return await self._get_one(Chat.url_id == url_id)

    async def get_by_either_id(self, identifier: str) -> ChatSession | None:
        """Resolve a route identifier: primary id first, then URL id."""
        chat = await self.get_by_id(identifier)
        if chat is not None:
            return chat
        return await self.get_by_url_id(identifier)

    async def upsert(
        self,
        chat_id: str,
        messages: Sequence[Message],
        url_id: str | None = None,
        description: str | None = None,
    ) -> ChatSession:
        """Insert the chat or fully replace the record stored under ``chat_id``.

        The timestamp is always refreshed. A URL id already used by another
        chat raises WriteError and leaves the table unchanged.
        """
        values = {
            "id": chat_id,
            "url_id": url_id,
            "messages": [
                m.model_dump(mode="json", by_alias=True, exclude_none=True)
                for m in messages
            ],
            "description": description,
            "timestamp": _now_iso(),
        }
        stmt = insert(Chat).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Chat.id],
            set_={key: stmt.excluded[key] for key in values if key != "id"},
        )
        try:
            async with self._store.session_factory.begin() as session:
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise WriteError(f"Failed to store chat {chat_id}: {exc}") from exc
        return ChatSession.model_validate(values)

    async def delete_by_id(self, chat_id: str) -> None:
        """Delete a chat by primary id. Deleting a missing id is a no-op."""
        try:
            async with self._store.session_factory.begin() as session:
                await session.execute(delete(Chat).where(Chat.id == chat_id))
        except SQLAlchemyError as exc:
            raise WriteError(f"Failed to delete chat {chat_id}: {exc}") from exc

    async def allocate_next_id(self) -> str:
        """Return one more than the highest numeric primary id, "1" when empty.

        Non-numeric ids are ignored. This scans every key.
        """
        ids = await self._scalars(select(Chat.id))
        highest = max((int(i) for i in ids if i.isdigit()), default=0)
        return str(highest + 1)

    async def allocate_url_id(self, candidate: str) -> str:
        """Return ``candidate`` or the first free ``candidate-N`` for N >= 2."""
        taken = set(
            await self._scalars(select(Chat.url_id).where(Chat.url_id.is_not(None)))
        )
        if candidate not in taken:
            return candidate

        suffix = 2
        while f"{candidate}-{suffix}" in taken:
            suffix += 1
        return f"{candidate}-{suffix}"

    async def _get_one(self, condition: ColumnElement[bool]) -> ChatSession | None:
        try:
            async with self._store.session_factory() as session:
                result = await session.execute(select(Chat).where(condition))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise ReadError(f"Failed to load chat: {exc}") from exc
        return ChatSession.model_validate(row) if row is not None else None

    async def _scalars(self, stmt: Select[tuple[Any]]) -> list[Any]:
        try:
            async with self._store.session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars())
        except SQLAlchemyError as exc:
            raise ReadError(f"Failed to scan chat ids: {exc}") from exc
