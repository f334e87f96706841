"""Environment-driven settings for the relay server and the terminal client."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_SERVER_URL = "wss://secure-channel.onrender.com"


@dataclass
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    # Validate configuration invariants after initialisation.
    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """Read HOST and PORT; missing or blank values fall back to the defaults."""
        env = os.environ if environ is None else environ
        host = env.get("HOST") or DEFAULT_HOST
        raw_port = env.get("PORT") or str(DEFAULT_PORT)
        try:
            port = int(raw_port)
        except ValueError:
            raise ValueError(f"PORT must be an integer, got {raw_port!r}") from None
        return cls(host=host, port=port)


@dataclass
class ClientConfig:
    server_url: str = DEFAULT_SERVER_URL

    def __post_init__(self) -> None:
        scheme = urlparse(self.server_url).scheme
        if scheme not in ("ws", "wss"):
            raise ValueError(f"server URL must start with ws:// or wss://, got {self.server_url!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """Read SERVER_URL, falling back to the public relay."""
        env = os.environ if environ is None else environ
        return cls(server_url=env.get("SERVER_URL") or DEFAULT_SERVER_URL)
