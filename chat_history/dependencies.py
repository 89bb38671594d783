"""Global dependencies for the application."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from chat_history.core import database
from chat_history.core.config import settings
from chat_history.core.exceptions import StoreUnavailableError
from chat_history.repositories.chat_repo import ChatRepository
from chat_history.services.chat_service import ChatRegistry, ChatService
from chat_history.services.history_service import HistoryService


@lru_cache
def get_llm() -> BaseChatModel:
    """Get the LLM instance based on the configured provider."""
    llm_config = settings.llm
    match llm_config.provider:
        case "openai":
            return ChatOpenAI(
                model=llm_config.openai_model,
                api_key=llm_config.openai_api_key,
                max_tokens=llm_config.max_tokens,  # type: ignore[call-arg]
                streaming=True,
            )
        case "anthropic":
            return ChatAnthropic(  # type: ignore[call-arg]
                model_name=llm_config.anthropic_model,
                api_key=llm_config.anthropic_api_key,
                max_tokens=llm_config.max_tokens,
                streaming=True,
            )
        case _:
            raise ValueError(f"Unsupported LLM provider: {llm_config.provider}")


@lru_cache
def get_registry() -> ChatRegistry:
    """Get the process-wide registry of active chats."""
    return ChatRegistry(max_active=settings.chat.max_active_chats)


def get_chat_repository() -> ChatRepository | None:
    """Get a ChatRepository, or None when the store could not be opened."""
    try:
        return ChatRepository(database.get_store())
    except StoreUnavailableError:
        return None


ChatRepositoryDep = Annotated[ChatRepository | None, Depends(get_chat_repository)]
RegistryDep = Annotated[ChatRegistry, Depends(get_registry)]


def get_chat_service(chat_repo: ChatRepositoryDep, registry: RegistryDep) -> ChatService:
    """Get ChatService wired to the model, the store and the registry."""
    return ChatService(
        llm=get_llm(),
        chat_repo=chat_repo,
        registry=registry,
        chat_config=settings.chat,
        system_prompt=settings.llm.system_prompt,
    )


def get_history_service(
    chat_repo: ChatRepositoryDep, registry: RegistryDep
) -> HistoryService:
    """Get HistoryService for the stored chat list."""
    return HistoryService(chat_repo=chat_repo, registry=registry)
