import os
from dataclasses import dataclass
from typing import Optional


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass
class Config:
    """Client connection configuration container."""
    host: str = "localhost"
    port: int = 6379
    socket_timeout: Optional[float] = None
    connect_timeout: Optional[float] = 5.0
    encoding: str = "utf-8"

    @classmethod
    def from_env(cls) -> "Config":
        """
        Build a configuration from REDIS_* environment variables.

        Unset variables keep their defaults. A variable that is set but not
        numeric raises ValueError.
        """
        config = cls()
        config.host = os.getenv("REDIS_HOST", config.host)
        config.port = int(os.getenv("REDIS_PORT", str(config.port)))

        if "REDIS_SOCKET_TIMEOUT" in os.environ:
            config.socket_timeout = _optional_float(os.environ["REDIS_SOCKET_TIMEOUT"])
        if "REDIS_CONNECT_TIMEOUT" in os.environ:
            config.connect_timeout = _optional_float(os.environ["REDIS_CONNECT_TIMEOUT"])

        return config
