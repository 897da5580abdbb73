"""Library configuration via pydantic-settings.

Broker endpoints and tuning values are read from `.env` or the environment.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed settings loaded from `.env`."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = Field(default="servicebus-message", alias="APP_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    rabbitmq_host: str = Field(default="localhost", alias="RABBITMQ_HOST")
    rabbitmq_port: int = Field(default=5672, alias="RABBITMQ_PORT")
    rabbitmq_user: str = Field(default="guest", alias="RABBITMQ_USER")
    rabbitmq_password: str = Field(default="guest", alias="RABBITMQ_PASSWORD")
    rabbitmq_queue: str = Field(default="messages", alias="RABBITMQ_QUEUE")
    rabbitmq_prefetch_count: int = Field(default=10, gt=0, alias="RABBITMQ_PREFETCH_COUNT")
    rabbitmq_connect_timeout: float = Field(
        default=60.0, gt=0, alias="RABBITMQ_CONNECT_TIMEOUT"
    )

    settle_timeout_seconds: float | None = Field(
        default=30.0, gt=0, alias="SETTLE_TIMEOUT_SECONDS"
    )

    @property
    def rabbitmq_dsn(self) -> str:
        """Return RabbitMQ DSN."""
        return (
            f"amqp://{self.rabbitmq_user}:{self.rabbitmq_password}"
            f"@{self.rabbitmq_host}:{self.rabbitmq_port}/"
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
