"""Configuration of a hum sync server process."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final

from .cleanup import DEFAULT_GRACE_PERIOD

DEFAULT_HOST: Final = "0.0.0.0"  # noqa: S104
DEFAULT_PORT: Final = 3001
DEFAULT_ALLOWED_ORIGINS: Final = ("http://localhost:3000", "http://localhost:3002")


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Settings for running a HumServer."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    ws_path: str = "/ws"
    server_id: str = "hum-sync"
    server_name: str = "HUM Sync Engine"
    grace_period: float = DEFAULT_GRACE_PERIOD
    """Seconds an empty room is kept before deletion."""
    allowed_origins: tuple[str, ...] = field(default=DEFAULT_ALLOWED_ORIGINS)
    """Origins allowed to call the HTTP status routes."""
    advertise: bool = True
    """Whether to announce the server over mDNS."""

    def __post_init__(self) -> None:
        """Validate the settings."""
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in range 1-65535, got {self.port}")
        if self.grace_period < 0:
            raise ValueError("grace_period must not be negative")
        if not self.ws_path.startswith("/"):
            raise ValueError("ws_path must start with '/'")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> ServerConfig:
        """
        Build a config from environment variables, then apply ``overrides``.

        ``PORT`` sets the port and ``FRONTEND_URL`` adds an allowed origin. Overrides
        with a value of None are ignored.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        if port := env.get("PORT"):
            values["port"] = int(port)
        if frontend_url := env.get("FRONTEND_URL"):
            values["allowed_origins"] = (*DEFAULT_ALLOWED_ORIGINS, frontend_url)
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)  # type: ignore[arg-type]
