"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for complaint SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and SLA policy provider
- Memory: In-process backends with the same contract
- External: Scheduler and escalation notifier
"""

from src.sla.infrastructure.models import ComplaintModel, ReportModel
from src.sla.infrastructure.repositories import (
    SQLAlchemyComplaintRepository,
    SQLAlchemyReportDirectory,
    YAMLPolicyProvider,
)
from src.sla.infrastructure.memory import InMemoryComplaintRepository, InMemoryReportDirectory
from src.sla.infrastructure.external import EscalationScheduler, LoggingEscalationNotifier

__all__ = [
    "ComplaintModel",
    "ReportModel",
    "SQLAlchemyComplaintRepository",
    "SQLAlchemyReportDirectory",
    "YAMLPolicyProvider",
    "InMemoryComplaintRepository",
    "InMemoryReportDirectory",
    "EscalationScheduler",
    "LoggingEscalationNotifier",
]
