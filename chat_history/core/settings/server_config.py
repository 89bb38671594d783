"""Local server configuration."""

from pydantic import BaseModel

LOOPBACK_HOSTS = frozenset({"127.0.0.1", "localhost", "::1"})


class ServerConfig(BaseModel, frozen=True):
    """Bind address of the local chat shell API."""

    host: str
    port: int

    @property
    def origin(self) -> str:
        """Browser origin the local UI is served from."""
        return f"http://{self.host}:{self.port}"

    @property
    def is_loopback(self) -> bool:
        """Whether the API is only reachable from this machine."""
        return self.host in LOOPBACK_HOSTS
