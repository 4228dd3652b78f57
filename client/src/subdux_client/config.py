"""
Client configuration.

Settings are read from environment variables the same way the rest of the
client reads its secrets: every value has a sensible default so the client
can be constructed in tests and one-off CLI runs without any environment at
all.  Invalid numeric values are logged and replaced with their default.
"""

from __future__ import annotations

import logging
import math
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


logger = logging.getLogger(__name__)

#: Six hours, matching how long the dashboard tolerates stale rates.
DEFAULT_RATE_CACHE_TTL = 6 * 60 * 60


def _env_number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        value = math.nan
    if not math.isfinite(value):
        logger.warning("Invalid value for %s=%r; using default %s", name, raw, default)
        return default
    return value


class ClientSettings(BaseModel):
    """Runtime settings for the API client."""

    api_base: str = Field("http://localhost:8080/api", description="API base URL")
    refresh_path: str = Field("/auth/refresh", description="Credential refresh endpoint")
    login_path: str = Field("/login", description="Where the UI goes after the session expires")
    rate_cache_ttl: float = Field(DEFAULT_RATE_CACHE_TTL, gt=0, description="Rate cache TTL in seconds")
    storage_backend: Literal["memory", "file", "redis"] = "memory"
    storage_path: str = "subdux_state.json"
    redis_host: str = "localhost"
    redis_port: int = 6379
    http_timeout: float = Field(30.0, gt=0)
    transport_retries: int = Field(3, ge=1)
    log_level: str = "INFO"

    @field_validator("api_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("refresh_path", "login_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @classmethod
    def from_env(cls, **overrides: object) -> "ClientSettings":
        """Build settings from ``SUBDUX_*`` environment variables.

        Keyword arguments take precedence over the environment.
        """
        backend: Optional[str] = os.getenv("SUBDUX_STORAGE_BACKEND")
        if backend is not None and backend.lower() not in ("memory", "file", "redis"):
            logger.warning("Unknown storage backend %r; using memory", backend)
            backend = None
        values = {
            "api_base": os.getenv("SUBDUX_API_BASE", "http://localhost:8080/api"),
            "refresh_path": os.getenv("SUBDUX_REFRESH_PATH", "/auth/refresh"),
            "login_path": os.getenv("SUBDUX_LOGIN_PATH", "/login"),
            "rate_cache_ttl": _env_number("SUBDUX_RATE_CACHE_TTL", DEFAULT_RATE_CACHE_TTL),
            "storage_backend": (backend or "memory").lower(),
            "storage_path": os.getenv("SUBDUX_STORAGE_PATH", "subdux_state.json"),
            "redis_host": os.getenv("REDIS_HOST", "localhost"),
            "redis_port": int(_env_number("REDIS_PORT", 6379)),
            "http_timeout": _env_number("SUBDUX_HTTP_TIMEOUT", 30.0),
            "transport_retries": int(_env_number("SUBDUX_TRANSPORT_RETRIES", 3)),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
        }
        if values["rate_cache_ttl"] <= 0:
            logger.warning("SUBDUX_RATE_CACHE_TTL must be positive; using default")
            values["rate_cache_ttl"] = DEFAULT_RATE_CACHE_TTL
        if values["http_timeout"] <= 0:
            values["http_timeout"] = 30.0
        if values["transport_retries"] < 1:
            values["transport_retries"] = 1
        values.update(overrides)
        return cls(**values)
