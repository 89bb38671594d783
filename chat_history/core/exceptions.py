"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Store (5xx) ---


class StoreUnavailableError(AppException):
    """The local chat database cannot be opened."""

    def __init__(self, message: str = "Chat history storage is unavailable") -> None:
        super().__init__(message=message, code="STORE_UNAVAILABLE", status_code=503)


class ReadError(AppException):
    """A read transaction against the chat table failed."""

    def __init__(self, message: str = "Failed to read chat history") -> None:
        super().__init__(message=message, code="STORE_READ_ERROR", status_code=500)


class WriteError(AppException):
    """A write or delete transaction against the chat table was aborted."""

    def __init__(self, message: str = "Failed to store chat history") -> None:
        super().__init__(message=message, code="STORE_WRITE_ERROR", status_code=500)


# --- Conflict (409) ---


class HistoryRewriteError(AppException):
    """An already persisted message was changed or removed."""

    def __init__(self) -> None:
        super().__init__(
            message="Persisted messages cannot be rewritten",
            code="HISTORY_REWRITE",
            status_code=409,
        )


class StreamInProgressError(AppException):
    """A reply is still streaming for this chat."""

    def __init__(self) -> None:
        super().__init__(
            message="A response is still being generated for this chat",
            code="STREAM_IN_PROGRESS",
            status_code=409,
        )


# --- Not Found (404) ---


class ChatNotFoundError(AppException):
    """No chat matches the requested id or url id."""

    def __init__(self) -> None:
        super().__init__(
            message="Chat not found",
            code="CHAT_NOT_FOUND",
            status_code=404,
        )


# --- Upstream (502) ---


class ModelError(AppException):
    """The language model failed while generating a reply."""

    def __init__(self, message: str = "The model failed to generate a reply") -> None:
        super().__init__(message=message, code="MODEL_ERROR", status_code=502)


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": exc.status_code,
            "message": exc.message,
            "code": exc.code,
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request validation failures in the common error shape."""
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(
        status_code=422,
        content={
            "status": 422,
            "message": message,
            "code": "VALIDATION_ERROR",
        },
    )
