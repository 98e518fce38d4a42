"""
Shared configuration management for the decision engine.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseSettings):
    """Engine configuration, read from DECISION_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DECISION_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Account
    account_id: Optional[int] = Field(default=None)
    sdk_key: Optional[str] = Field(default=None)

    # Gateway / enrichment service
    gateway_url: Optional[str] = Field(default=None)
    gateway_timeout: float = Field(default=5.0)

    # Event dispatch
    events_url: Optional[str] = Field(default=None)
    events_timeout: float = Field(default=5.0)

    # Sticky-assignment storage
    redis_url: Optional[str] = Field(default=None)
    storage_prefix: str = Field(default="decision:")
    storage_ttl_seconds: Optional[int] = Field(default=None)

    # Resilience
    retry_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=0.2)
    circuit_failure_threshold: int = Field(default=5)
    circuit_recovery_timeout: float = Field(default=60.0)


def get_config(**overrides) -> EngineConfig:
    """Get engine configuration, with optional explicit overrides."""
    return EngineConfig(**overrides)
