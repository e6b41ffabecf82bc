"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="complaint-escalation", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/complaints",
        description="Relational store connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Policy ==========
    sla_config_path: Path = Field(
        default=Path("escalation_config.yaml"),
        description="Optional YAML file overriding the SLA table"
    )
    sla_high_hours: int = Field(default=24, description="Response threshold for high priority", ge=1)
    sla_medium_hours: int = Field(default=48, description="Response threshold for medium priority", ge=1)
    sla_low_hours: int = Field(default=72, description="Response threshold for low priority", ge=1)

    # ========== Escalation Engine ==========
    escalation_sweep_interval: int = Field(
        default=3600,
        description="Seconds between automatic sweeps (0 disables the timer)",
        ge=0
    )
    escalation_initial_delay: float = Field(
        default=30.0,
        description="Seconds to wait before the first sweep after startup",
        ge=0
    )
    escalation_cooldown_hours: float = Field(
        default=24.0,
        description="Minimum hours between two automatic escalations",
        ge=0
    )
    escalation_superadmin_level: int = Field(
        default=2,
        description="Escalation level from which the superadmin tier is notified",
        ge=1
    )
    escalation_critical_level: int = Field(
        default=3,
        description="Escalation level from which urgency is critical",
        ge=1
    )
    notification_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound on waiting for a single notification dispatch",
        gt=0
    )

    # ========== Slack Integration ==========
    slack_admin_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for the admin tier"
    )
    slack_superadmin_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for the superadmin tier"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )
    portal_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used to link complaints from notifications"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str):
    """Complaint priority levels."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ComplaintStatus(str):
    """Complaint lifecycle statuses."""
    NEW = "new"
    UNDER_REVIEW = "under-review"
    RESOLVED = "resolved"


class Urgency(str):
    """Urgency grade attached to an escalation notification."""
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationTier(str):
    """Recipient tiers for escalation notifications."""
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class SchedulerState(str):
    """Escalation scheduler states."""
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


# ========== Lists for validation ==========

VALID_PRIORITIES = [Priority.HIGH, Priority.MEDIUM, Priority.LOW]
