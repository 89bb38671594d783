"""Chat API router: hydration, streamed turns and abort."""

import json
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from chat_history.dependencies import get_chat_service
from chat_history.schemas.chat_schema import ChatRequest, HydrationResult
from chat_history.schemas.response_schema import (
    ERROR_RESPONSES,
    ApiResponse,
    success_response,
)
from chat_history.services.chat_service import ActiveChat, ChatService

router = APIRouter(
    prefix="/api/v1/chat",
    tags=["chat"],
    responses=ERROR_RESPONSES,
)

ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


@router.get("", response_model=ApiResponse[HydrationResult])
async def hydrate_new_chat(service: ChatServiceDep) -> dict:
    """Start a new, empty chat."""
    return success_response(await service.hydrate(None))


@router.get("/{route_id}", response_model=ApiResponse[HydrationResult])
async def hydrate_chat(route_id: str, service: ChatServiceDep) -> dict:
    """Initial messages for the chat addressed by primary id or URL id."""
    return success_response(await service.hydrate(route_id))


async def event_generator(
    service: ChatService, active: ActiveChat
) -> AsyncGenerator[str, None]:
    """Generate Server-Sent Events for one turn."""
    async for event in service.stream_turn(active):
        yield f"data: {json.dumps(event.model_dump())}\n\n"


@router.post("/stream")
async def stream_chat(request: ChatRequest, service: ChatServiceDep) -> StreamingResponse:
    """Send a user message and stream the reply as Server-Sent Events."""
    active = await service.begin_turn(request)
    return StreamingResponse(
        event_generator(service, active),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/{route_id}/abort", response_model=ApiResponse[dict])
async def abort_chat(route_id: str, service: ChatServiceDep) -> dict:
    """Stop the reply currently streaming for a chat."""
    aborted = service.abort(route_id)
    return success_response({"aborted": aborted})
