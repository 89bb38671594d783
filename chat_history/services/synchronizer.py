"""Session synchronizer: decides when a growing message log is read and written."""

import asyncio
import re
import uuid
from collections.abc import Sequence
from enum import StrEnum

import structlog

from chat_history.core.exceptions import HistoryRewriteError
from chat_history.repositories.chat_repo import ChatRepository
from chat_history.schemas.chat_schema import ChatSession, HydrationResult, Message
from chat_history.services.file_modifications import strip_file_modifications

logger = structlog.get_logger()

NON_SLUG_CHARS_RE = re.compile(r"[^a-z0-9]+")
FALLBACK_URL_ID = "chat"


class SyncState(StrEnum):
    """Lifecycle of one active chat."""

    UNINITIALIZED = "uninitialized"
    HYDRATING = "hydrating"
    READY = "ready"
    PERSISTING = "persisting"


def slugify(text: str, max_length: int) -> str:
    """Derive a URL-friendly id candidate from a user message."""
    slug = NON_SLUG_CHARS_RE.sub("-", strip_file_modifications(text).lower())
    slug = slug.strip("-")[:max_length].rstrip("-")
    return slug or FALLBACK_URL_ID


def describe(text: str, max_length: int) -> str | None:
    """First line of what the user typed, truncated."""
    lines = strip_file_modifications(text).splitlines()
    first = next((line.strip() for line in lines if line.strip()), "")
    if not first:
        return None
    if len(first) > max_length:
        return first[: max_length - 1].rstrip() + "…"
    return first


class ChatSynchronizer:
    """Bridges one live conversation and the chat store.

    The in-memory message list is the source of truth. The store is read once
    at hydration and afterwards only written to, whenever the list has grown
    past what was last persisted. Without a repository the conversation stays
    usable but nothing is stored.
    """

    def __init__(
        self,
        repo: ChatRepository | None,
        url_id_max_length: int = 48,
        description_max_length: int = 80,
    ) -> None:
        self._repo = repo
        self._url_id_max_length = url_id_max_length
        self._description_max_length = description_max_length
        self._lock = asyncio.Lock()
        self._persisted: list[Message] = []
        self.state = SyncState.UNINITIALIZED
        self.chat_id: str | None = None
        self.url_id: str | None = None
        self.description: str | None = None
        self.initial_messages: list[Message] = []

    @property
    def persistence_enabled(self) -> bool:
        return self._repo is not None

    @property
    def persisted_count(self) -> int:
        return len(self._persisted)

    async def hydrate(self, route_id: str | None = None) -> HydrationResult:
        """Load the chat addressed by ``route_id`` (primary or URL id).

        A miss, or no route id at all, starts a new empty chat.
        """
        self.state = SyncState.HYDRATING
        chat: ChatSession | None = None
        try:
            if route_id and self._repo is not None:
                chat = await self._repo.get_by_either_id(route_id)
        except Exception:
            self.state = SyncState.UNINITIALIZED
            raise

        if chat is not None:
            self.chat_id = chat.id
            self.url_id = chat.url_id
            self.description = chat.description
            self.initial_messages = list(chat.messages)
            self._persisted = list(chat.messages)
            logger.debug(
                "Chat hydrated", chat_id=chat.id, message_count=len(chat.messages)
            )

        self.state = SyncState.READY
        return HydrationResult(
            ready=True,
            initial_messages=self.initial_messages,
            id=self.chat_id,
            url_id=self.url_id,
            description=self.description,
        )

    async def persist(self, messages: Sequence[Message]) -> ChatSession | None:
        """Flush ``messages`` to the store if the list grew since the last flush.

        Returns the stored record, or None when nothing new had to be written.
        Store errors propagate and leave the synchronizer exactly as it was.
        """
        if self.state is SyncState.UNINITIALIZED:
            raise RuntimeError("persist() called before hydrate()")

        async with self._lock:
            if len(messages) <= len(self._persisted):
                return None
            if list(messages[: len(self._persisted)]) != self._persisted:
                raise HistoryRewriteError()

            if self._repo is None:
                # in-memory only: an ephemeral id keeps the chat addressable
                self.chat_id = self.chat_id or uuid.uuid4().hex
                self._persisted = list(messages)
                return None

            self.state = SyncState.PERSISTING
            try:
                chat = await self._write(messages)
            finally:
                self.state = SyncState.READY

            self.chat_id = chat.id
            self.url_id = chat.url_id
            self.description = chat.description
            self._persisted = list(messages)
            logger.info(
                "Chat persisted", chat_id=chat.id, message_count=len(messages)
            )
            return chat

    async def _write(self, messages: Sequence[Message]) -> ChatSession:
        assert self._repo is not None
        chat_id = self.chat_id
        url_id = self.url_id
        description = self.description

        if chat_id is None:
            chat_id = await self._repo.allocate_next_id()
            first_user = next((m for m in messages if m.role == "user"), None)
            if first_user is not None:
                url_id = await self._repo.allocate_url_id(
                    slugify(first_user.content, self._url_id_max_length)
                )
                description = describe(
                    first_user.content, self._description_max_length
                )

        return await self._repo.upsert(
            chat_id, messages, url_id=url_id, description=description
        )
