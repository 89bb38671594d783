"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage

from chat_history.core import database
from chat_history.core.database import StoreHandle, open_store
from chat_history.core.settings import ChatConfig
from chat_history.repositories.chat_repo import ChatRepository
from chat_history.services.chat_service import ChatRegistry, ChatService

# --- Local store (SQLite file per test) ---


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Location of the test chat database."""
    return tmp_path / "data" / "chats.db"


@pytest.fixture
async def store(db_path: Path) -> AsyncGenerator[StoreHandle, None]:
    """Open a fresh chat store, close it after the test."""
    handle = await open_store(db_path)
    yield handle
    await handle.close()


@pytest.fixture
def chat_repo(store: StoreHandle) -> ChatRepository:
    """Create a ChatRepository backed by the test store."""
    return ChatRepository(store)


# --- Fake LLM ---


def make_llm(*replies: str) -> GenericFakeChatModel:
    """A chat model that streams the given replies, one per call."""
    return GenericFakeChatModel(messages=iter([AIMessage(content=r) for r in replies]))


@pytest.fixture
def fake_llm() -> GenericFakeChatModel:
    """A chat model with a few canned replies."""
    return make_llm("Hi there, how can I help?", "Sure thing.", "Done.")


# --- Services ---


@pytest.fixture
def chat_config() -> ChatConfig:
    return ChatConfig(url_id_max_length=48, description_max_length=80)


@pytest.fixture
def registry() -> ChatRegistry:
    return ChatRegistry()


@pytest.fixture
def chat_service(
    fake_llm: GenericFakeChatModel,
    chat_repo: ChatRepository,
    registry: ChatRegistry,
    chat_config: ChatConfig,
) -> ChatService:
    """ChatService wired to the test store and the fake model."""
    return ChatService(
        llm=fake_llm,
        chat_repo=chat_repo,
        registry=registry,
        chat_config=chat_config,
        system_prompt="You are a test assistant.",
    )


# --- App client ---


@pytest.fixture
def override_app(
    store: StoreHandle,
    fake_llm: GenericFakeChatModel,
    registry: ChatRegistry,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[FastAPI, None, None]:
    """Point the app at the test store, fake model and a fresh registry."""
    from chat_history.dependencies import get_registry
    from chat_history.main import app

    monkeypatch.setattr(database, "store_handle", store)
    app.dependency_overrides[get_registry] = lambda: registry
    monkeypatch.setattr("chat_history.dependencies.get_llm", lambda: fake_llm)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(override_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client for the local API."""
    transport = ASGITransport(app=override_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
