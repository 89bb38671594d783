"""Chat session database model."""

from typing import Any

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chat_history.core.database import Base


class Chat(Base):
    """One persisted conversation with its full ordered message log."""

    __tablename__ = "chats"
    __table_args__ = (
        Index("ix_chats_id", "id", unique=True),
        Index("ix_chats_url_id", "url_id", unique=True),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    url_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    messages: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[str] = mapped_column(String(40), nullable=False)
