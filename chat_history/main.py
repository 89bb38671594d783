"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from chat_history.api.v1.chat_router import router as chat_router
from chat_history.api.v1.history_router import router as history_router
from chat_history.core.config import settings
from chat_history.core.database import close_store, init_store
from chat_history.core.exceptions import (
    AppException,
    StoreUnavailableError,
    app_exception_handler,
    validation_exception_handler,
)
from chat_history.schemas.response_schema import ApiResponse, success_response

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the chat store on startup; run without persistence if it fails."""
    logger.info(
        "Starting application",
        app_name=settings.app.name,
        environment=settings.app.env,
        llm_provider=settings.llm.provider,
    )
    if not settings.server.is_loopback and not settings.app.is_development:
        logger.warning(
            "Chat API is reachable from other hosts", host=settings.server.host
        )
    try:
        await init_store()
        app.state.persistence = True
    except StoreUnavailableError as exc:
        logger.warning("Chat history disabled", reason=exc.message)
        app.state.persistence = False
    yield
    await close_store()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.app.name,
    description="Local AI chat assistant with persistent chat history",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.app.debug,
)

# Exception handlers
app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.server.origin] if settings.server.is_loopback else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=ApiResponse[dict])
async def health_check() -> dict:
    """Health check endpoint."""
    return success_response(
        {
            "status": "healthy",
            "persistence": getattr(app.state, "persistence", False),
        }
    )


# Register routers
app.include_router(chat_router)
app.include_router(history_router)


def run() -> None:
    """Serve the app on the configured local address."""
    uvicorn.run(
        "chat_history.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.is_development,
    )
