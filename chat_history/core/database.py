"""Local chat database: engine lifecycle, schema versioning and the store handle."""

from dataclasses import dataclass
from pathlib import Path

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from chat_history.core.config import settings
from chat_history.core.exceptions import StoreUnavailableError

logger = structlog.get_logger()

SCHEMA_VERSION = 1


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


@dataclass(frozen=True)
class StoreHandle:
    """An opened chat database shared by every repository in the process."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    url: str

    async def close(self) -> None:
        """Release pooled connections."""
        await self.engine.dispose()


store_handle: StoreHandle | None = None


async def open_store(path: Path, echo: bool = False) -> StoreHandle:
    """Open the chat database at ``path``, creating it on first use.

    Creating the ``chats`` table and stamping the schema version are both
    idempotent, so reopening an existing database is safe. Any failure to
    reach the storage engine raises StoreUnavailableError and is not retried.
    """
    import chat_history.models.chat  # noqa: F401  registers the chats table

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StoreUnavailableError(
            f"Cannot create chat database directory {path.parent}: {exc}"
        ) from exc

    url = f"sqlite+aiosqlite:///{path}"
    engine = create_async_engine(url, echo=echo)
    try:
        async with engine.begin() as conn:
            result = await conn.exec_driver_sql("PRAGMA user_version")
            version = result.scalar() or 0
            if version > SCHEMA_VERSION:
                raise StoreUnavailableError(
                    f"Chat database schema version {version} is newer than "
                    f"supported version {SCHEMA_VERSION}"
                )
            await conn.run_sync(Base.metadata.create_all)
            if version < SCHEMA_VERSION:
                await conn.exec_driver_sql(f"PRAGMA user_version = {SCHEMA_VERSION}")
    except StoreUnavailableError:
        await engine.dispose()
        raise
    except (SQLAlchemyError, OSError) as exc:
        await engine.dispose()
        raise StoreUnavailableError(
            f"Cannot open chat database {path}: {exc}"
        ) from exc

    logger.info("Chat store opened", path=str(path), schema_version=SCHEMA_VERSION)
    return StoreHandle(
        engine=engine,
        session_factory=async_sessionmaker(engine, expire_on_commit=False),
        url=url,
    )


async def init_store() -> StoreHandle:
    """Open the process-wide chat database once and reuse it afterwards."""
    global store_handle  # noqa: PLW0603
    if store_handle is None:
        store_handle = await open_store(
            settings.database.path, echo=settings.database.echo
        )
    return store_handle


async def close_store() -> None:
    """Close the process-wide chat database."""
    global store_handle  # noqa: PLW0603
    if store_handle:
        await store_handle.close()
        store_handle = None


def get_store() -> StoreHandle:
    """Get the active chat database handle."""
    if store_handle is None:
        raise StoreUnavailableError()
    return store_handle
