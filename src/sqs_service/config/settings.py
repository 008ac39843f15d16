"""
Module: settings.py
Description: Wrapper configuration using pydantic-settings.

Loads default SQS connection and consumer settings from environment
variables with validation. Supports .env files for local development.
Every field has a default so the wrapper can be imported without any
environment; per-instance overrides go through the SQS config dict.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Wrapper settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # AWS settings
    aws_region: str = Field(default="us-east-1", description="AWS region")
    aws_account_id: Optional[str] = Field(
        default=None,
        description="Account id used to construct queue URLs for unlisted queues"
    )
    sqs_endpoint_url: Optional[str] = Field(
        default=None,
        description="Override SQS endpoint (local emulators, VPC endpoints)"
    )
    queue_name_prefix: str = Field(
        default="",
        description="Prefix used when listing existing queues at init"
    )

    # Consumer settings
    consumer_batch_size: int = Field(
        default=10,
        ge=1,
        le=10,
        description="Messages received per poll"
    )
    consumer_wait_time_seconds: int = Field(
        default=20,
        ge=0,
        le=20,
        description="Long polling wait time in seconds"
    )
    consumer_visibility_timeout: Optional[int] = Field(
        default=None,
        ge=0,
        le=43200,
        description="Visibility timeout applied to received messages"
    )
    consumer_error_backoff_max: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound in seconds for backoff after receive errors"
    )

    @field_validator('aws_account_id')
    @classmethod
    def validate_account_id(cls, v: Optional[str]) -> Optional[str]:
        """Validate the AWS account id is a 12 digit string."""
        if v is None or v == "":
            return None

        import re
        if not re.match(r'^\d{12}$', v):
            raise ValueError("aws_account_id must be a 12 digit string")

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
