"""
Environment-driven settings for the proxy process.

Settings are read once at startup (after ``.env`` has been loaded) and passed
explicitly to the orchestrator and the FastAPI application.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from agent_proxy.config.constants import (
    COMMIT_DEBOUNCE_MS,
    DEFAULT_PROXY_HOST,
    DEFAULT_PROXY_PATH,
    DEFAULT_PROXY_PORT,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_REALTIME_URL,
    REALTIME_BASE_URL,
    UPSTREAM_CONNECT_TIMEOUT,
)

TRUTHY_VALUES = ("1", "true")


class ProxySettings(BaseModel):
    """Runtime configuration of one proxy process."""

    openai_api_key: Optional[str] = Field(None, description="Bearer token for the upstream")
    upstream_url: str = Field(DEFAULT_REALTIME_URL, description="Realtime WebSocket URL")
    default_model: str = Field(DEFAULT_REALTIME_MODEL, description="Model used when Settings names none")
    host: str = DEFAULT_PROXY_HOST
    port: int = Field(DEFAULT_PROXY_PORT, ge=1, le=65535)
    path: str = DEFAULT_PROXY_PATH
    log_level: Optional[str] = Field(None, description="debug, info, warn or error")
    debug: bool = Field(False, description="Legacy alias for log_level=debug")
    commit_debounce_ms: int = Field(COMMIT_DEBOUNCE_MS, ge=0)
    connect_timeout: float = Field(UPSTREAM_CONNECT_TIMEOUT, gt=0)

    @field_validator("path")
    def validate_path(cls, v):
        """Endpoint paths must be absolute."""
        if not v.startswith("/"):
            raise ValueError(f"Proxy path must start with '/': {v}")
        return v

    @field_validator("openai_api_key", "log_level")
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    @property
    def upstream_headers(self) -> dict:
        """Headers sent on the upstream WebSocket handshake."""
        if not self.openai_api_key:
            return {}
        return {"Authorization": f"Bearer {self.openai_api_key}"}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProxySettings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)
        """
        env = os.environ if environ is None else environ
        model = env.get("OPENAI_REALTIME_MODEL") or DEFAULT_REALTIME_MODEL
        values = {
            "openai_api_key": env.get("OPENAI_API_KEY"),
            "upstream_url": env.get("OPENAI_REALTIME_URL") or f"{REALTIME_BASE_URL}?model={model}",
            "default_model": model,
            "host": env.get("HOST") or DEFAULT_PROXY_HOST,
            "port": int(env.get("OPENAI_PROXY_PORT") or DEFAULT_PROXY_PORT),
            "path": env.get("OPENAI_PROXY_PATH") or DEFAULT_PROXY_PATH,
            "log_level": env.get("LOG_LEVEL"),
            "debug": (env.get("OPENAI_PROXY_DEBUG") or "").strip().lower() in TRUTHY_VALUES,
            "commit_debounce_ms": int(
                env.get("OPENAI_PROXY_COMMIT_DEBOUNCE_MS") or COMMIT_DEBOUNCE_MS
            ),
        }
        return cls(**values)
