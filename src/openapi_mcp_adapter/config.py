"""Configuration for the OpenAPI MCP Adapter."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

DEFAULT_HEADERS: Dict[str, str] = {
    "Content-Type": "application/json",
    "User-Agent": "openapi-mcp-adapter",
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ServerConfig:
    """Backend target; the document's ``servers`` entries are never consulted."""

    base_url: str
    headers: Dict[str, str] = field(default_factory=dict)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="openapi-mcp-adapter")

    base_url: str = Field(default="")
    headers: Optional[str] = Field(default=None)
    openapi_spec: Optional[str] = Field(default=None)

    adapter_transport: str = Field(default="stdio")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=8000)

    adapter_request_timeout_seconds: float = Field(default=30)
    adapter_openapi_cache_seconds: int = Field(default=3600)
    adapter_strict_enums: bool = Field(default=False)

    adapter_log_level: str = Field(default="INFO")

    def parsed_headers(self) -> Dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        if not self.headers:
            return headers
        try:
            custom_headers = json.loads(self.headers)
        except json.JSONDecodeError as exc:
            logger.error("Invalid HEADERS format: %s. Using defaults.", exc)
            return headers
        if not isinstance(custom_headers, dict):
            logger.error("Invalid HEADERS format: expected a JSON object. Using defaults.")
            return headers
        headers.update({str(key): str(value) for key, value in custom_headers.items()})
        return headers

    def server_config(self) -> ServerConfig:
        if not self.base_url:
            raise ConfigError("BASE_URL environment variable is required")
        return ServerConfig(base_url=self.base_url, headers=self.parsed_headers())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
