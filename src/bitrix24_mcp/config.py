"""Server configuration loaded from the environment."""

import logging
import sys

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import APIConfiguration

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ServerConfig(BaseSettings):
    """Settings for the Bitrix24 MCP server (``BITRIX24_*`` variables or ``.env``)."""

    model_config = SettingsConfigDict(
        env_prefix="BITRIX24_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    webhook_url: SecretStr = Field(..., description="Incoming webhook URL")
    timeout: float = Field(default=30.0, gt=0)
    batch_size: int = Field(default=50, ge=1, le=50, description="Commands per batch request")
    max_retries: int = Field(default=5, ge=1)
    rate_limit_delay: float = Field(default=0.5, ge=0)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    def get_api_config(self) -> APIConfiguration:
        return APIConfiguration(
            webhook_url=self.webhook_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            rate_limit_delay=self.rate_limit_delay,
        )


def setup_logging(level: str = "INFO") -> None:
    """Send server logs to stderr; stdout belongs to the stdio MCP transport."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    has_console = any(
        isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr
        for handler in root.handlers
    )
    if not has_console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
