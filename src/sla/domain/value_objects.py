"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from src.config import Priority, Settings, VALID_PRIORITIES
from src.core.exceptions import ConfigurationException


class SLAPolicy(BaseModel):
    """
    SLA policy: how many wall-clock hours each deadline allows.

    Triage deadline = submission + triage_hours (priority independent)
    Resolution deadline = assignment + resolution_hours_by_priority[priority]
    Response deadline = assignment + response_hours_by_priority[priority]

    Loaded once at startup and shared read-only.
    """
    model_config = ConfigDict(frozen=True)

    triage_hours: int = Field(default=24, gt=0, description="Triage deadline in hours")
    triage_alert_lead_hours: int = Field(
        default=15,
        ge=0,
        description="Hours after submission at which a pending triage turns critical"
    )
    resolution_hours_by_priority: Dict[Priority, int] = Field(
        default_factory=lambda: {Priority.HIGH: 24, Priority.MEDIUM: 72, Priority.LOW: 168},
        description="Resolution SLA in hours by priority"
    )
    response_hours_by_priority: Dict[Priority, int] = Field(
        default_factory=lambda: {Priority.HIGH: 2, Priority.MEDIUM: 8, Priority.LOW: 24},
        description="First response SLA in hours by priority"
    )

    @field_validator("resolution_hours_by_priority", "response_hours_by_priority")
    @classmethod
    def validate_hours_by_priority(cls, v: Dict[Priority, int]) -> Dict[Priority, int]:
        """Every priority needs a positive duration."""
        missing = [p.value for p in VALID_PRIORITIES if p not in v]
        if missing:
            raise ValueError(f"missing durations for priorities: {', '.join(missing)}")

        for priority, hours in v.items():
            if hours <= 0:
                raise ValueError(f"duration for {priority.value} must be positive, got {hours}")

        return v

    @model_validator(mode="after")
    def validate_alert_lead(self) -> "SLAPolicy":
        if self.triage_alert_lead_hours >= self.triage_hours:
            raise ValueError(
                f"triage_alert_lead_hours ({self.triage_alert_lead_hours}) "
                f"must be less than triage_hours ({self.triage_hours})"
            )
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SLAPolicy":
        """Build a policy, turning validation errors into ConfigurationException."""
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid SLA policy: {e.error_count()} error(s)",
                {"errors": e.errors(include_url=False, include_context=False)}
            ) from e

    @classmethod
    def from_settings(cls, settings: Settings) -> "SLAPolicy":
        """Build the policy from environment-backed settings."""
        return cls.from_mapping(settings_to_policy_mapping(settings))

    @property
    def triage_alert_window_hours(self) -> int:
        """Remaining hours at which a pending triage becomes critical (default 24 - 15 = 9)."""
        return self.triage_hours - self.triage_alert_lead_hours

    def triage_deadline(self, from_: datetime) -> datetime:
        return from_ + timedelta(hours=self.triage_hours)

    def resolution_deadline(self, priority: Priority, from_: datetime) -> datetime:
        return from_ + timedelta(hours=self.resolution_hours_by_priority[priority])

    def response_deadline(self, priority: Priority, from_: datetime) -> datetime:
        return from_ + timedelta(hours=self.response_hours_by_priority[priority])


def settings_to_policy_mapping(settings: Settings) -> Dict[str, Any]:
    """Map flat SLA_* settings onto the SLAPolicy field layout."""
    return {
        "triage_hours": settings.sla_triage_hours,
        "triage_alert_lead_hours": settings.sla_triage_alert_lead_hours,
        "resolution_hours_by_priority": {
            Priority.HIGH: settings.sla_resolution_high_hours,
            Priority.MEDIUM: settings.sla_resolution_medium_hours,
            Priority.LOW: settings.sla_resolution_low_hours,
        },
        "response_hours_by_priority": {
            Priority.HIGH: settings.sla_response_high_hours,
            Priority.MEDIUM: settings.sla_response_medium_hours,
            Priority.LOW: settings.sla_response_low_hours,
        },
    }


@dataclass(frozen=True)
class EscalationEvent:
    """
    One entry of a complaint's escalation ledger.

    `level` is the escalation level reached by this event.
    """
    escalated_at: datetime
    level: int
    reason: str

    def to_record(self) -> Dict[str, Any]:
        """Storage layout: {escalated_at, level, reason}."""
        return {
            "escalated_at": self.escalated_at.isoformat(),
            "level": self.level,
            "reason": self.reason,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "EscalationEvent":
        escalated_at = record["escalated_at"]
        if isinstance(escalated_at, str):
            escalated_at = datetime.fromisoformat(escalated_at)
        if escalated_at.tzinfo is None:
            escalated_at = escalated_at.replace(tzinfo=timezone.utc)

        return cls(
            escalated_at=escalated_at,
            level=int(record["level"]),
            reason=str(record["reason"]),
        )
