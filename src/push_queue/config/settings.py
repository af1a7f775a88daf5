"""
Module: settings.py
Description: Application configuration using pydantic-settings.

Configures all application settings from environment variables with
validation and defaults. Supports .env files for local development.
"""

import re
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application settings
    app_name: str = Field(default="Push Queue API", description="Application name")
    app_version: str = Field(default="0.3.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")

    # AWS settings
    aws_region: str = Field(default="us-east-1", description="AWS region")
    stage: str = Field(default="dev", description="Deployment stage")

    # DynamoDB settings
    queue_table_name: str = Field(
        ...,
        description="Name of the DynamoDB webhook queue table"
    )

    # Security settings
    webhook_secret: str = Field(
        ...,
        min_length=1,
        description="Shared secret the scheduler presents to POST /queue/process"
    )
    status_api_key_hash: Optional[str] = Field(
        default=None,
        description="PBKDF2 hash of the operator API key for GET /queue/status"
    )

    # Dispatch settings
    score_push_url: str = Field(
        ...,
        description="Downstream endpoint receiving score_push webhooks"
    )
    note_push_url: str = Field(
        ...,
        description="Downstream endpoint receiving note_push webhooks"
    )
    dispatch_token: str = Field(
        ...,
        min_length=1,
        description="Service credential sent as bearer token to push endpoints"
    )
    dispatch_timeout: int = Field(
        default=10,
        ge=1,
        le=30,
        description="HTTP timeout in seconds for each dispatch"
    )

    # Batch settings
    batch_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum queue items processed per invocation"
    )
    candidate_fetch_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Page size used when over-fetching due candidates"
    )
    max_candidate_pages: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Query pages read per status when selecting due candidates"
    )

    # Retry settings
    rate_limit_delay_minutes: int = Field(
        default=5,
        ge=1,
        description="Fixed retry delay after a rate-limited dispatch"
    )
    max_backoff_minutes: int = Field(
        default=7 * 24 * 60,
        ge=1,
        description="Ceiling on the exponential backoff delay"
    )
    processing_timeout_minutes: int = Field(
        default=15,
        ge=1,
        description="Age after which a processing item is reclaimed"
    )

    # Status report settings
    unhealthy_processing_threshold: int = Field(default=50, ge=1)
    unhealthy_pending_threshold: int = Field(default=100, ge=1)
    pending_warning_threshold: int = Field(default=50, ge=0)
    failed_warning_threshold: int = Field(default=10, ge=0)
    overdue_warning_threshold: int = Field(default=5, ge=0)
    avg_attempts_warning_threshold: float = Field(default=2, ge=0)
    processing_warning_threshold: int = Field(default=20, ge=0)
    recent_activity_limit: int = Field(default=10, ge=1)
    failed_items_limit: int = Field(default=20, ge=1)
    overdue_items_limit: int = Field(default=10, ge=1)

    # Metrics settings
    metrics_namespace: str = Field(default="PushQueue", description="CloudWatch namespace")
    metrics_enabled: bool = Field(default=True, description="Publish CloudWatch metrics")

    @field_validator('queue_table_name')
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Validate DynamoDB table names."""
        if not v or not isinstance(v, str):
            raise ValueError("Table name must be a non-empty string")

        # Allow alphanumeric, hyphens, underscores
        if not re.match(r'^[a-zA-Z0-9_.-]+$', v):
            raise ValueError(
                "Table name must contain only letters, numbers, dots, hyphens, and underscores"
            )

        return v

    @field_validator('score_push_url', 'note_push_url')
    @classmethod
    def validate_push_url(cls, v: str) -> str:
        """Validate push endpoints are HTTP(S) URLs."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError("push endpoint must be a valid HTTP/HTTPS URL")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency returning the global settings instance."""
    return settings
