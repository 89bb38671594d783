"""Chat identifier derivation and active chat configuration."""

from pydantic import BaseModel


class ChatConfig(BaseModel, frozen=True):
    """Limits for identifiers, labels and chats kept in memory."""

    url_id_max_length: int
    description_max_length: int
    max_active_chats: int = 64
