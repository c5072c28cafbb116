"""Application configuration."""
from functools import lru_cache
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    database_url: str = "sqlite:///./webhooks.db"

    # Redis (for Celery)
    redis_url: str = "redis://localhost:6379/0"

    # Webhook delivery engine
    webhook_batch_size: int = 100
    webhook_max_attempts: int = 5
    webhook_backoff_schedule: List[int] = [30, 120, 600, 3600]
    webhook_request_timeout_seconds: float = 10.0
    webhook_signature_tolerance_seconds: int = 300
    webhook_stale_claim_seconds: int = 600
    webhook_auto_disable_threshold: int = 10

    # Celery beat intervals
    webhook_queue_interval_seconds: float = 10.0
    webhook_reclaim_interval_seconds: float = 60.0

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class WebhookConfig(BaseModel):
    """Immutable tuning knobs for the delivery engine.

    Built once from :class:`Settings` and handed to the store, claimer and
    sender at construction time.
    """

    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(100, ge=1)
    max_attempts: int = Field(5, ge=1)
    backoff_schedule: Tuple[int, ...] = (30, 120, 600, 3600)
    request_timeout_seconds: float = Field(10.0, gt=0)
    signature_tolerance_seconds: int = Field(300, ge=0)
    stale_claim_seconds: int = Field(600, ge=1)
    auto_disable_threshold: int = Field(10, ge=0)

    @field_validator("backoff_schedule")
    @classmethod
    def check_backoff_schedule(cls, value: Tuple[int, ...]) -> Tuple[int, ...]:
        if not value:
            raise ValueError("backoff_schedule must not be empty")
        if any(step <= 0 for step in value):
            raise ValueError("backoff_schedule entries must be positive")
        if any(b < a for a, b in zip(value, value[1:])):
            raise ValueError("backoff_schedule must be non-decreasing")
        return value

    @classmethod
    def from_settings(cls, settings: Settings = None) -> "WebhookConfig":
        """Build the engine config from application settings."""
        settings = settings or get_settings()
        return cls(
            batch_size=settings.webhook_batch_size,
            max_attempts=settings.webhook_max_attempts,
            backoff_schedule=tuple(settings.webhook_backoff_schedule),
            request_timeout_seconds=settings.webhook_request_timeout_seconds,
            signature_tolerance_seconds=settings.webhook_signature_tolerance_seconds,
            stale_claim_seconds=settings.webhook_stale_claim_seconds,
            auto_disable_threshold=settings.webhook_auto_disable_threshold,
        )
