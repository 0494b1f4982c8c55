"""SDK-level configuration loaded from environment and overridable at runtime."""

from __future__ import annotations

import os
import sys

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from companion_sdk.logger import logger

DEFAULT_SERVICE_HOST = "127.0.0.1"
DEFAULT_SERVICE_PORT = 8091
DEFAULT_SERVICE_MODULE = "companion_service.dev_server"


def _strip_trailing_slashes(url: str | None) -> str | None:
    if url is None:
        return None
    return url.rstrip("/")


class BaseCompanionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="COMPANION_SDK_", extra="ignore")


class ConnectionSettings(BaseCompanionSettings):
    host: str = DEFAULT_SERVICE_HOST
    port: int = DEFAULT_SERVICE_PORT
    base_url: str | None = None
    request_timeout: float = 30.0

    @field_validator("base_url", mode="after")
    @classmethod
    def normalize_base_url(cls, url: str | None) -> str | None:
        return _strip_trailing_slashes(url)


class SupervisorSettings(BaseCompanionSettings):
    python_command: str = Field(default_factory=lambda: sys.executable or "python")
    module: str = DEFAULT_SERVICE_MODULE
    cwd: str | None = None
    app_root: str = Field(default_factory=os.getcwd)
    service_dir_name: str = "companion"
    health_poll_interval: float = 0.5
    start_timeout: float = 15.0
    shutdown_grace_period: float = 5.0
    external_base_url: str | None = None

    @field_validator("external_base_url", mode="after")
    @classmethod
    def normalize_external_url(cls, url: str | None) -> str | None:
        return _strip_trailing_slashes(url)


class StreamSettings(BaseCompanionSettings):
    idle_timeout: float = 30.0
    total_timeout: float = 300.0


class SDKSettings(BaseModel):
    """Global SDK settings for the companion service and chat streaming."""

    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)

    def get_locked(self) -> FrozenSDKSettings:
        payload = self.model_dump()
        return FrozenSDKSettings.model_validate(payload)


class FrozenSDKSettings(SDKSettings):
    model_config = ConfigDict(frozen=True)


settings = SDKSettings()


def get_sdk_config() -> FrozenSDKSettings:
    """Return an immutable snapshot of current global SDK settings."""
    return settings.get_locked()


def set_base_url(url: str | None) -> None:
    """Publish the companion service base URL read by every client."""
    normalized = _strip_trailing_slashes(url)
    if normalized != settings.connection.base_url:
        logger.info(f"Companion service base URL set to {normalized}")
    settings.connection.base_url = normalized


def get_base_url() -> str:
    """Return the published base URL, or the one derived from host and port."""
    connection = settings.connection
    if connection.base_url:
        return connection.base_url
    return f"http://{connection.host}:{connection.port}"
