"""Server Configuration - Environment variables read once at startup."""

import os
from dataclasses import dataclass
from typing import Mapping


def _env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """Runtime configuration for the WaterQuest server.

    Attributes:
        api_token: Bearer token required on /mcp (None disables the check)
        user_id: Account this server acts for
        host: Bind address
        port: Bind port
        live_reminders: Run the live reminder loop in-process
        generator_timeout: Seconds to wait for generated reminder copy
        log_level: Root logging level name
    """

    api_token: str | None = None
    user_id: str = "default"
    host: str = "0.0.0.0"
    port: int = 8080
    live_reminders: bool = False
    generator_timeout: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        env = os.environ if environ is None else environ
        return cls(
            api_token=env.get("WATERQUEST_API_TOKEN") or None,
            user_id=env.get("WATERQUEST_USER_ID", "default"),
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", 8080)),
            live_reminders=_env_flag(env.get("WATERQUEST_LIVE_REMINDERS")),
            generator_timeout=float(env.get("WATERQUEST_GENERATOR_TIMEOUT", 5.0)),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
