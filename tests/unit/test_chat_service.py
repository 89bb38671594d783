"""Unit tests for ChatService and ChatRegistry."""

import json
from collections.abc import AsyncIterator
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessageChunk

from chat_history.core.exceptions import (
    ChatNotFoundError,
    StreamInProgressError,
    WriteError,
)
from chat_history.core.settings import ChatConfig
from chat_history.repositories.chat_repo import ChatRepository
from chat_history.schemas.chat_schema import ChatRequest, StreamEvent
from chat_history.services.chat_service import ActiveChat, ChatRegistry, ChatService
from chat_history.services.file_modifications import FileModification
from chat_history.services.synchronizer import ChatSynchronizer
from chat_history.services.transport import ChatTransport
from tests.conftest import make_llm


async def _run_turn(service: ChatService, request: ChatRequest) -> list[StreamEvent]:
    active = await service.begin_turn(request)
    return [event async for event in service.stream_turn(active)]


def _data(events: list[StreamEvent], name: str) -> dict:
    return json.loads(next(e for e in events if e.event == name).data)


def _active(chat_id: str, url_id: str | None = None) -> ActiveChat:
    synchronizer = ChatSynchronizer(None)
    synchronizer.chat_id = chat_id
    synchronizer.url_id = url_id
    return ActiveChat(synchronizer=synchronizer, transport=ChatTransport(make_llm()))


def _failing_llm() -> MagicMock:
    """A model that emits one chunk and then fails."""
    llm = MagicMock(spec=BaseChatModel)

    async def astream(messages: list) -> AsyncIterator[AIMessageChunk]:
        yield AIMessageChunk(content="partial")
        raise RuntimeError("provider down")

    llm.astream = astream
    return llm


class TestStreamTurn:
    """Tests for a full chat turn."""

    @pytest.mark.asyncio
    async def test_new_chat_turn(
        self, chat_service: ChatService, chat_repo: ChatRepository
    ) -> None:
        events = await _run_turn(chat_service, ChatRequest(message="hello"))

        kinds = [e.event for e in events]
        assert kinds[0] == "chat"
        assert kinds[-1] == "done"
        assert "".join(e.data for e in events if e.event == "token") == (
            "Hi there, how can I help?"
        )
        assert _data(events, "chat") == {
            "id": "1",
            "urlId": "hello",
            "description": "hello",
        }

        stored = await chat_repo.get_by_url_id("hello")
        assert stored is not None
        assert [(m.role, m.content) for m in stored.messages] == [
            ("user", "hello"),
            ("assistant", "Hi there, how can I help?"),
        ]

    @pytest.mark.asyncio
    async def test_follow_up_turn_reuses_chat(
        self,
        chat_service: ChatService,
        chat_repo: ChatRepository,
        registry: ChatRegistry,
    ) -> None:
        await _run_turn(chat_service, ChatRequest(message="hello"))
        events = await _run_turn(
            chat_service, ChatRequest(message="and again", chat_id="hello")
        )

        assert "chat" not in [e.event for e in events]
        assert _data(events, "done")["id"] == "1"
        assert len(registry) == 1
        stored = await chat_repo.get_by_id("1")
        assert stored is not None
        assert len(stored.messages) == 4

    @pytest.mark.asyncio
    async def test_file_modifications_are_embedded(
        self, chat_service: ChatService, chat_repo: ChatRepository
    ) -> None:
        request = ChatRequest(
            message="Fix the button",
            file_modifications=[
                FileModification(path="src/Button.tsx", type="file", content="x")
            ],
        )
        events = await _run_turn(chat_service, request)

        assert _data(events, "chat")["urlId"] == "fix-the-button"
        stored = await chat_repo.get_by_id("1")
        assert stored is not None
        first = stored.messages[0].content
        assert first.startswith("<file_modifications>")
        assert first.endswith("Fix the button")

    @pytest.mark.asyncio
    async def test_write_failure_becomes_error_event(
        self, chat_service: ChatService, chat_repo: ChatRepository
    ) -> None:
        with patch.object(chat_repo, "upsert", side_effect=WriteError("disk full")):
            events = await _run_turn(chat_service, ChatRequest(message="hello"))

        errors = [e for e in events if e.event == "error"]
        assert len(errors) == 2
        assert json.loads(errors[0].data) == {
            "code": "STORE_WRITE_ERROR",
            "message": "disk full",
        }
        assert events[-1].event == "done"
        assert any(e.event == "token" for e in events)
        assert await chat_repo.get_all() == []

    @pytest.mark.asyncio
    async def test_abort_keeps_user_turn_only(
        self, chat_service: ChatService, chat_repo: ChatRepository
    ) -> None:
        active = await chat_service.begin_turn(ChatRequest(message="hello"))
        events: list[StreamEvent] = []
        async for event in chat_service.stream_turn(active):
            events.append(event)
            if event.event == "token":
                assert chat_service.abort("1") is True

        assert events[-1].event == "aborted"
        assert "done" not in [e.event for e in events]
        stored = await chat_repo.get_by_id("1")
        assert stored is not None
        assert [m.role for m in stored.messages] == ["user"]
        assert [m.role for m in active.transport.messages] == ["user"]

    @pytest.mark.asyncio
    async def test_second_turn_while_streaming_is_refused(
        self, chat_service: ChatService
    ) -> None:
        active = await chat_service.begin_turn(ChatRequest(message="hello"))
        stream = chat_service.stream_turn(active)
        async for event in stream:
            if event.event == "token":
                break

        with pytest.raises(StreamInProgressError):
            await chat_service.begin_turn(ChatRequest(message="again", chat_id="1"))
        await stream.aclose()

    def test_abort_unknown_chat(self, chat_service: ChatService) -> None:
        with pytest.raises(ChatNotFoundError):
            chat_service.abort("nope")


class TestHydrate:
    """Tests for ChatService.hydrate."""

    @pytest.mark.asyncio
    async def test_hydrate_stored_chat(
        self, chat_service: ChatService, chat_repo: ChatRepository
    ) -> None:
        await chat_repo.upsert("2", [], url_id="empty")
        result = await chat_service.hydrate("empty")

        assert result.ready is True
        assert result.id == "2"
        assert result.url_id == "empty"

    @pytest.mark.asyncio
    async def test_hydrate_active_chat_includes_unsaved_turns(
        self, chat_service: ChatService
    ) -> None:
        await _run_turn(chat_service, ChatRequest(message="hello"))

        result = await chat_service.hydrate("hello")
        assert len(result.initial_messages) == 2


class TestWithoutStore:
    """The chat keeps working when the store is unavailable."""

    @pytest.mark.asyncio
    async def test_in_memory_conversation(
        self, registry: ChatRegistry, chat_config: ChatConfig
    ) -> None:
        service = ChatService(
            llm=make_llm("first", "second"),
            chat_repo=None,
            registry=registry,
            chat_config=chat_config,
        )

        events = await _run_turn(service, ChatRequest(message="hello"))
        chat_id = _data(events, "chat")["id"]
        assert chat_id
        assert "error" not in [e.event for e in events]

        events = await _run_turn(service, ChatRequest(message="more", chat_id=chat_id))
        assert _data(events, "done")["id"] == chat_id
        active = registry.get(chat_id)
        assert active is not None
        assert len(active.transport.messages) == 4


class TestChatRegistry:
    """Tests for ChatRegistry."""

    @pytest.mark.asyncio
    async def test_forget_drops_every_alias(
        self, chat_service: ChatService, registry: ChatRegistry
    ) -> None:
        await _run_turn(chat_service, ChatRequest(message="hello"))
        assert registry.get("1") is registry.get("hello")

        registry.forget("1")

        assert registry.get("1") is None
        assert registry.get("hello") is None
        assert len(registry) == 0

    def test_primary_id_wins_over_url_id(self, registry: ChatRegistry) -> None:
        first = _active("1", url_id="hello")
        second = _active("2", url_id="1")
        registry.register(first)
        registry.register(second)

        assert registry.get("1") is first
        assert registry.get("2") is second

        registry.forget("1")

        assert registry.get("1") is second
        assert registry.get("2") is second
        assert len(registry) == 1

    def test_forget_unknown_id_keeps_url_alias(self, registry: ChatRegistry) -> None:
        active = _active("2", url_id="1")
        registry.register(active)

        registry.forget("1")

        assert registry.get("1") is active
        assert len(registry) == 1

    def test_size_is_bounded(self) -> None:
        registry = ChatRegistry(max_active=2)
        chats = [_active(str(i), url_id=f"chat-{i}") for i in range(1, 4)]
        for active in chats:
            registry.register(active)

        assert len(registry) == 2
        assert registry.get("1") is None
        assert registry.get("chat-1") is None
        assert registry.get("3") is chats[2]

    def test_least_recently_used_is_evicted(self) -> None:
        registry = ChatRegistry(max_active=2)
        first, second, third = _active("1"), _active("2"), _active("3")
        registry.register(first)
        registry.register(second)
        assert registry.get("1") is first

        registry.register(third)

        assert registry.get("1") is first
        assert registry.get("2") is None

    def test_streaming_chat_is_not_evicted(self) -> None:
        registry = ChatRegistry(max_active=1)
        streaming = _active("1")
        streaming.transport._is_streaming = True
        registry.register(streaming)

        registry.register(_active("2"))

        assert registry.get("1") is streaming
        assert len(registry) == 2


class TestIdCollisions:
    """A URL id equal to another chat's primary id."""

    @pytest.mark.asyncio
    async def test_follow_up_reaches_chat_with_that_primary_id(
        self,
        chat_service: ChatService,
        chat_repo: ChatRepository,
        registry: ChatRegistry,
    ) -> None:
        first = await _run_turn(chat_service, ChatRequest(message="hello"))
        second = await _run_turn(chat_service, ChatRequest(message="1"))
        assert _data(first, "chat")["id"] == "1"
        assert _data(second, "chat") == {"id": "2", "urlId": "1", "description": "1"}

        stored = await chat_repo.get_by_either_id("1")
        assert stored is not None
        assert (await chat_service.hydrate("1")).id == stored.id == "1"

        active = await chat_service.begin_turn(ChatRequest(message="more", chat_id="1"))
        assert active.synchronizer.chat_id == "1"
        assert registry.get("2") is not active

    @pytest.mark.asyncio
    async def test_stored_primary_id_wins_after_eviction(
        self, chat_repo: ChatRepository, chat_config: ChatConfig
    ) -> None:
        registry = ChatRegistry(max_active=1)
        service = ChatService(
            llm=make_llm("a", "b"),
            chat_repo=chat_repo,
            registry=registry,
            chat_config=chat_config,
        )
        await _run_turn(service, ChatRequest(message="hello"))
        await _run_turn(service, ChatRequest(message="1"))
        assert registry.get("1") is not None
        assert registry.get("1").synchronizer.chat_id == "2"  # type: ignore[union-attr]

        result = await service.hydrate("1")

        assert result.id == "1"
        assert result.url_id == "hello"

    @pytest.mark.asyncio
    async def test_registry_stays_bounded_across_turns(
        self, chat_repo: ChatRepository, chat_config: ChatConfig
    ) -> None:
        registry = ChatRegistry(max_active=2)
        service = ChatService(
            llm=make_llm("a", "b", "c", "d"),
            chat_repo=chat_repo,
            registry=registry,
            chat_config=chat_config,
        )
        for text in ("one", "two", "three", "four"):
            await _run_turn(service, ChatRequest(message=text))
            assert len(registry) <= 2

        assert len(await chat_repo.get_all()) == 4
        result = await service.hydrate("one")
        assert [m.content for m in result.initial_messages] == ["one", "a"]


class TestReplyFailures:
    """Model failures end the turn with an error event."""

    @pytest.mark.asyncio
    async def test_model_failure_becomes_error_event(
        self,
        chat_repo: ChatRepository,
        registry: ChatRegistry,
        chat_config: ChatConfig,
    ) -> None:
        service = ChatService(
            llm=_failing_llm(),
            chat_repo=chat_repo,
            registry=registry,
            chat_config=chat_config,
        )

        active = await service.begin_turn(ChatRequest(message="hello"))
        events = [event async for event in service.stream_turn(active)]

        assert [e.event for e in events] == ["chat", "token", "error"]
        assert json.loads(events[-1].data) == {
            "code": "MODEL_ERROR",
            "message": "provider down",
        }
        assert [m.role for m in active.transport.messages] == ["user"]
        assert active.transport.is_streaming is False
        stored = await chat_repo.get_by_id("1")
        assert stored is not None
        assert [m.role for m in stored.messages] == ["user"]

    @pytest.mark.asyncio
    async def test_concurrent_turn_gets_error_event(
        self, chat_service: ChatService
    ) -> None:
        await _run_turn(chat_service, ChatRequest(message="hello"))
        first = await chat_service.begin_turn(ChatRequest(message="a", chat_id="1"))
        second = await chat_service.begin_turn(ChatRequest(message="b", chat_id="1"))
        assert first is second

        stream = chat_service.stream_turn(first)
        async for event in stream:
            if event.event == "token":
                break

        events = [event async for event in chat_service.stream_turn(second)]

        assert [e.event for e in events] == ["error"]
        assert json.loads(events[0].data)["code"] == "STREAM_IN_PROGRESS"
        await stream.aclose()
