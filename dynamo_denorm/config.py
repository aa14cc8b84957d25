"""
Configuration for dynamo_denorm.

Uses pydantic-settings for environment variable management.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DenormConfig(BaseSettings):
    """Configuration for the denormalized-index maintenance engines."""

    model_config = SettingsConfigDict(
        env_prefix="DYNAMO_DENORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # DynamoDB Configuration
    table_name: str = Field(
        default="denorm",
        description="DynamoDB table holding every collection",
    )
    aws_region: str = Field(
        default="us-east-1",
        description="AWS region for DynamoDB",
    )
    endpoint_url: str | None = Field(
        default=None,
        description="Override DynamoDB endpoint URL (for local testing)",
    )

    # Reserved collections
    events_collection: str = Field(default="_events")
    counters_collection: str = Field(default="_counters")
    search_collection: str = Field(default="_search")
    trigrams_collection: str = Field(default="_trigrams")
    uniques_collection: str = Field(default="_uniques")
    tags_collection: str = Field(default="_tags")

    # Batch writes
    chunk_size: int = Field(
        default=100,
        description="Operations per atomic batched write",
        ge=1,
        le=100,
    )
    max_workers: int = Field(
        default=1,
        description="Concurrent chunk commits (1 commits sequentially)",
        ge=1,
        le=32,
    )

    # Event deduplication
    event_retention_hours: int = Field(
        default=24,
        description="Age after which dedup records are garbage collected",
        ge=1,
    )
    recent_event_cache_size: int = Field(
        default=1024,
        description="Event ids remembered per invocation",
        ge=1,
    )


@lru_cache
def get_config() -> DenormConfig:
    """Get cached configuration instance."""
    return DenormConfig()
