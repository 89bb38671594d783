"""Local chat database configuration."""

from pathlib import Path

from pydantic import BaseModel


class DatabaseConfig(BaseModel, frozen=True):
    """Local SQLite database settings."""

    path: Path
    echo: bool = False
