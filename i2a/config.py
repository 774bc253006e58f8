"""
Bridge configuration from environment variables.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

import httpx
from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """Raised when the bridge cannot be configured. Fatal before serving."""


class BridgeConfig(BaseSettings):
    target: str = "http://i2p-projekt.i2p"
    port: int = 8790
    upstream: int = 4444

    # Upstream readiness window: attempts * interval seconds
    readiness_attempts: int = 60
    readiness_interval: float = 1.0

    # None waits on the upstream indefinitely
    upstream_timeout: Optional[float] = None
    forward_headers: bool = False

    router_enabled: bool = True
    router_command: str = "emissary-cli"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="I2A_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @field_validator("target")
    @classmethod
    def _check_target(cls, value: str) -> str:
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as e:
            raise ValueError(f"invalid target URL {value!r}: {e}")
        if not url.scheme or not url.host:
            raise ValueError(f"target must be an absolute URL with scheme and host, got {value!r}")
        return value

    @field_validator("port", "upstream")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"port out of range: {value}")
        return value

    @field_validator("readiness_attempts")
    @classmethod
    def _check_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("readiness_attempts must be at least 1")
        return value

    @model_validator(mode="after")
    def _check_distinct_ports(self) -> "BridgeConfig":
        if self.port == self.upstream:
            raise ValueError(f"local port and upstream port must differ (both {self.port})")
        return self


def load_config(**overrides) -> BridgeConfig:
    """
    Build a BridgeConfig from the environment, applying explicit overrides.

    Raises:
        ConfigurationError: If any setting fails validation
    """
    try:
        return BridgeConfig(**overrides)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


@lru_cache
def get_config() -> BridgeConfig:
    return load_config()
