"""Domain-specific configuration models."""

from chat_history.core.settings.app_config import AppConfig
from chat_history.core.settings.chat_config import ChatConfig
from chat_history.core.settings.database_config import DatabaseConfig
from chat_history.core.settings.llm_config import LLMConfig
from chat_history.core.settings.server_config import ServerConfig

__all__ = [
    "AppConfig",
    "ChatConfig",
    "DatabaseConfig",
    "LLMConfig",
    "ServerConfig",
]
