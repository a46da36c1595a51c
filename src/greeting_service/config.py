"""
Service configuration.

All process-wide values (port, payload) live in one immutable settings object
that is handed to the app factory and the server builder.
"""
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PORT = 3000
DEFAULT_GREETING = "Hello from ECS deployed via Azure DevOps 🚀"

LogLevel = Literal["critical", "error", "warning", "info", "debug", "trace"]


class ServiceSettings(BaseSettings):
    """Settings read once at startup from GREETING_SERVICE_* env vars."""

    model_config = SettingsConfigDict(
        env_prefix="GREETING_SERVICE_",
        extra="ignore",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        frozen=True,
    )

    host: str = Field(
        default="0.0.0.0",
        min_length=1,
        description="Interface to bind.",
    )
    port: int = Field(
        default=DEFAULT_PORT,
        ge=1,
        le=65535,
        description="TCP port to listen on.",
    )
    greeting: str = Field(
        default=DEFAULT_GREETING,
        min_length=1,
        description="Body returned by GET /.",
    )
    service_name: str = Field(
        default="greeting-service",
        min_length=1,
        description="Name reported by the health endpoint.",
    )
    log_level: LogLevel = Field(
        default="info",
        description="Level for the service and uvicorn loggers.",
    )
    access_log: bool = Field(
        default=True,
        description="Emit one uvicorn access log line per request.",
    )
