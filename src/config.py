"""Application configuration using pydantic-settings pattern."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Meeting Stream Relay"
    app_version: str = "0.1.0"
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")
    disable_background_jobs: bool = Field(default=False)

    # Database (Turso)
    turso_database_url: str | None = Field(default=None)
    turso_auth_token: str | None = Field(default=None)

    # Message bus (Kafka). Unset servers means the in-process bus is used.
    kafka_bootstrap_servers: str | None = Field(default=None)
    kafka_consumer_group: str = Field(default="meeting-gateway")
    kafka_client_id: str = Field(default="meeting-stream-relay")
    memory_bus_retention: int = Field(
        default=1000,
        ge=1,
        description="Records kept per partition by the in-process bus",
    )

    # Outbox relay
    outbox_poll_interval_seconds: int = Field(default=5, ge=1)
    outbox_batch_size: int = Field(default=100, ge=1, le=1000)
    outbox_retention_hours: int = Field(
        default=24,
        ge=1,
        description="Processed outbox rows older than this are purged",
    )
    outbox_cleanup_interval_minutes: int = Field(default=60, ge=1)

    # Processed-result topics
    topic_processed_summaries: str = Field(default="processed-summary")
    topic_processed_transcriptions: str = Field(default="processed-transcription")
    topic_processed_action_items: str = Field(default="processed-action-items")

    # Text-message windowing
    message_window_minutes: int = Field(default=5, ge=1)
    topic_processed_messages: str = Field(default="processed-messages")

    # Notifier policy: also push every result to every live connection
    notify_broadcast_all: bool = Field(default=True)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
