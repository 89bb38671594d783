"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from chat_history.core.settings import (
    AppConfig,
    ChatConfig,
    DatabaseConfig,
    LLMConfig,
    ServerConfig,
)

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert AI assistant and senior software engineer. "
    "Answer with complete, working code. When the user message starts with a "
    "<file_modifications> block, treat it as the current state of the files "
    "the user edited since your last reply."
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.database.path).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = Field(
        default="chat-history",
        description="Application name",
    )
    app_env: Literal["development", "test", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=False,
        description="Debug mode",
    )

    # Local database
    database_path: Path = Field(
        default=Path("./data/chat_history.db"),
        description="Path to the local SQLite chat database",
    )
    database_echo: bool = Field(
        default=False,
        description="Log every SQL statement",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="anthropic",
        description="LLM provider to use",
    )
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model name",
    )
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key",
    )
    anthropic_model: str = Field(
        default="claude-3-5-sonnet-20240620",
        description="Anthropic model name",
    )
    llm_max_tokens: int = Field(
        default=8192,
        ge=1,
        le=64000,
        description="Maximum tokens per assistant reply",
    )
    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        description="System prompt prepended to every conversation",
    )

    # Chat identifiers
    url_id_max_length: int = Field(
        default=48,
        ge=8,
        le=200,
        description="Maximum length of a URL id derived from the first message",
    )
    description_max_length: int = Field(
        default=80,
        ge=8,
        le=500,
        description="Maximum length of a chat description",
    )
    max_active_chats: int = Field(
        default=64,
        ge=1,
        le=10000,
        description="Chats kept in memory before the least recently used is dropped",
    )

    # Server
    host: str = Field(
        default="127.0.0.1",
        description="Server host",
    )
    port: int = Field(
        default=5173,
        ge=1,
        le=65535,
        description="Server port",
    )

    # --- Domain properties ---

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Local database configuration."""
        return DatabaseConfig(path=self.database_path, echo=self.database_echo)

    @cached_property
    def llm(self) -> LLMConfig:
        """LLM provider configuration."""
        return LLMConfig(
            provider=self.llm_provider,
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            anthropic_api_key=self.anthropic_api_key,
            anthropic_model=self.anthropic_model,
            max_tokens=self.llm_max_tokens,
            system_prompt=self.system_prompt,
        )

    @cached_property
    def chat(self) -> ChatConfig:
        """Identifier derivation limits."""
        return ChatConfig(
            url_id_max_length=self.url_id_max_length,
            description_max_length=self.description_max_length,
            max_active_chats=self.max_active_chats,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
        )


# Global settings instance
settings = Settings()
