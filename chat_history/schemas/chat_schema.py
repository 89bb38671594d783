"""Chat session, message and streaming schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from chat_history.services.file_modifications import FileModification


class ToolInvocation(BaseModel):
    """Result of a tool call attached to an assistant message."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    args: Any = None
    result: Any = None


class Message(BaseModel):
    """A single fully received chat turn."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Literal["user", "assistant"]
    content: str
    tool_invocations: list[ToolInvocation] | None = Field(
        default=None, alias="toolInvocations"
    )


class ChatSession(BaseModel):
    """Persisted conversation record."""

    model_config = ConfigDict(
        frozen=True, from_attributes=True, populate_by_name=True
    )

    id: str
    url_id: str | None = Field(default=None, alias="urlId")
    messages: list[Message]
    description: str | None = None
    timestamp: str


class ChatSummary(BaseModel):
    """Chat history entry without its messages."""

    model_config = ConfigDict(
        frozen=True, from_attributes=True, populate_by_name=True
    )

    id: str
    url_id: str | None = Field(default=None, alias="urlId")
    description: str | None = None
    timestamp: str


class HydrationResult(BaseModel):
    """Initial state handed to the chat shell on mount."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ready: bool
    initial_messages: list[Message] = Field(
        default_factory=list, alias="initialMessages"
    )
    id: str | None = None
    url_id: str | None = Field(default=None, alias="urlId")
    description: str | None = None


class ChatRequest(BaseModel):
    """One outgoing user turn."""

    message: str = Field(..., min_length=1, max_length=100_000)
    chat_id: str | None = Field(default=None, alias="chatId")
    file_modifications: list[FileModification] = Field(
        default_factory=list, alias="fileModifications"
    )

    model_config = ConfigDict(populate_by_name=True)


class StreamEvent(BaseModel):
    """Server-Sent Event for streaming responses."""

    event: Literal["chat", "token", "done", "aborted", "error"]
    data: str
