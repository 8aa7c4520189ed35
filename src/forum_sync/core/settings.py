"""Application settings and configuration.

This module defines all configuration options for the forum-sync core.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Forum Sync", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="FORUM_LOG_LEVEL")

    # Relational store (SQLAlchemy backend)
    database_url: str = Field(default="sqlite:///./forum.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Relational store (PostgREST backend)
    rest_base_url: str | None = Field(default=None, alias="FORUM_REST_BASE_URL")
    rest_api_key: str | None = Field(default=None, alias="FORUM_REST_API_KEY")
    rest_access_token: str | None = Field(default=None, alias="FORUM_REST_ACCESS_TOKEN")
    rest_timeout_seconds: float = Field(default=10.0, alias="FORUM_REST_TIMEOUT_SECONDS")

    # Push channel (0 = unbounded subscription queues)
    subscription_queue_size: int = Field(default=0, alias="FORUM_SUBSCRIPTION_QUEUE_SIZE")

    # User-facing notices
    vote_failed_notice: str = Field(default="Failed to vote", alias="FORUM_VOTE_FAILED_NOTICE")
    message_failed_notice: str = Field(
        default="Failed to send message",
        alias="FORUM_MESSAGE_FAILED_NOTICE",
    )
    read_receipt_failed_notice: str = Field(
        default="Could not mark messages as read",
        alias="FORUM_READ_RECEIPT_FAILED_NOTICE",
    )
    post_failed_notice: str = Field(default="Failed to add post", alias="FORUM_POST_FAILED_NOTICE")
    placeholder_username: str = Field(default="Unknown user", alias="FORUM_PLACEHOLDER_USERNAME")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def rest_enabled(self) -> bool:
        """Return True when a PostgREST endpoint is configured."""
        return bool(self.rest_base_url)


settings = Settings()
