"""
Configuration Management

Pydantic-settings based configuration for the queued email sender.
All settings can be overridden via environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with MAILER_ and are case-insensitive.
    Example: MAILER_SES_FROM_ADDRESS=news@example.com
    """

    model_config = SettingsConfigDict(
        env_prefix="MAILER_",
        env_file=[".env.local", ".env"],  # Try .env.local first
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SES Configuration
    ses_from_address: str = Field(
        default="newsletter@example.com",
        description="Verified sender address used for every outbound email",
    )
    ses_from_name: str | None = Field(
        default=None,
        description="Optional display name for the sender",
    )
    ses_reply_to_address: str | None = Field(
        default=None,
        description="Reply-To used when a message does not carry its own",
    )
    ses_configuration_set: str | None = Field(
        default=None,
        description="SES configuration set for tracking",
    )
    ses_endpoint_url: str | None = Field(
        default=None,
        description="SES endpoint URL (for local development)",
    )
    ses_connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Connect timeout for SES API calls",
    )
    ses_read_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Read timeout for SES API calls",
    )

    # Inline image embedding
    embed_images: bool = Field(
        default=True,
        description="Fetch remote images and attach them inline",
    )
    image_fetch_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for each remote image download",
    )
    image_max_bytes: int = Field(
        default=5 * 1024 * 1024,
        gt=0,
        description="Largest image that will be embedded (SES raw limit is 10MB)",
    )
    image_user_agent: str = Field(
        default="queued-mailer/1.0",
        description="User-Agent header sent to image hosts",
    )

    # SQS batch handling
    report_batch_item_failures: bool = Field(
        default=True,
        description="Return batchItemFailures so SQS retries only failed records",
    )
    min_remaining_time_ms: int = Field(
        default=5000,
        ge=0,
        description="Stop starting new records when less invocation time remains",
    )

    # AWS Configuration
    aws_region: str = Field(
        default="us-east-1",
        description="AWS region",
    )

    # Application Configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def ses_config(self) -> dict:
        """SES client configuration."""
        config = {"region_name": self.aws_region}
        if self.ses_endpoint_url:
            config["endpoint_url"] = self.ses_endpoint_url
        return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are loaded only once.
    Call Settings.model_validate({}) in tests to override.
    """
    return Settings()
