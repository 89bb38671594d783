"""Stored chat history API router."""

from typing import Annotated

from fastapi import APIRouter, Depends

from chat_history.dependencies import get_history_service
from chat_history.schemas.chat_schema import ChatSession, ChatSummary
from chat_history.schemas.response_schema import (
    ERROR_RESPONSES,
    ApiResponse,
    success_response,
)
from chat_history.services.history_service import HistoryService

router = APIRouter(
    prefix="/api/v1/chats",
    tags=["history"],
    responses=ERROR_RESPONSES,
)

HistoryServiceDep = Annotated[HistoryService, Depends(get_history_service)]


@router.get("", response_model=ApiResponse[list[ChatSummary]])
async def list_chats(service: HistoryServiceDep) -> dict:
    """List stored chats, most recent first."""
    return success_response(await service.list_chats())


@router.get("/{route_id}", response_model=ApiResponse[ChatSession])
async def get_chat(route_id: str, service: HistoryServiceDep) -> dict:
    """Load a stored chat by primary id or URL id."""
    return success_response(await service.get_chat(route_id))


@router.delete("/{chat_id}", response_model=ApiResponse[None])
async def delete_chat(chat_id: str, service: HistoryServiceDep) -> dict:
    """Delete a stored chat by primary id."""
    await service.delete_chat(chat_id)
    return success_response(None, message="Chat deleted")
