"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="complaint-sla", description="Application name")
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
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Policy ==========
    # Range checks live on SLAPolicy so that a bad value surfaces as a
    # ConfigurationException at policy load rather than at import.
    sla_triage_hours: int = Field(default=24, description="Triage deadline in hours")
    sla_triage_alert_lead_hours: int = Field(
        default=15,
        description="Hours after submission at which a pending triage turns critical"
    )
    sla_resolution_high_hours: int = Field(default=24, description="Resolution SLA, high priority")
    sla_resolution_medium_hours: int = Field(default=72, description="Resolution SLA, medium priority")
    sla_resolution_low_hours: int = Field(default=168, description="Resolution SLA, low priority")
    sla_response_high_hours: int = Field(default=2, description="Response SLA, high priority")
    sla_response_medium_hours: int = Field(default=8, description="Response SLA, medium priority")
    sla_response_low_hours: int = Field(default=24, description="Response SLA, low priority")
    sla_config_path: Optional[Path] = Field(
        default=None,
        description="Optional YAML file overriding the SLA policy"
    )

    # ========== Escalation ==========
    escalation_enabled: bool = Field(default=True, description="Run the periodic escalation job")
    escalation_cron: str = Field(
        default="0 * * * *",
        description="Crontab for the escalation scan (hourly at minute 0)"
    )
    escalation_window_minutes: int = Field(
        default=60,
        description="Minimum spacing between two escalations of one complaint",
        ge=1
    )
    sla_report_cron: str = Field(
        default="0 9 * * *",
        description="Crontab for the daily SLA report"
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
        allowed = {"development", "testing", "staging", "production"}
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

class Priority(str, Enum):
    """Complaint priority levels."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ComplaintStatus(str, Enum):
    """Complaint workflow statuses."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class SLAPhase(str, Enum):
    """SLA clock phases. TRIAGE is initial, RESOLUTION is terminal."""
    TRIAGE = "triage"
    RESOLUTION = "resolution"


MAX_ESCALATION_LEVEL = 3

BREACH_REASON = "SLA breach"
TRIAGE_BREACH_REASON = "Triage SLA breach - no officer assigned"


# ========== Lists for validation ==========

VALID_PRIORITIES = [Priority.HIGH, Priority.MEDIUM, Priority.LOW]
