"""
SLA Domain Layer
================

Domain layer for the complaint SLA module.

Contains:
- Entities: Core business objects with identity (Complaint, EscalationLedger)
- Value Objects: Immutable objects defined by attributes (SLAPolicy, EscalationEvent)
- Domain Services: Stateless business logic (SLAEngine)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.sla.domain.entities import Complaint, EscalationLedger
from src.sla.domain.value_objects import EscalationEvent, SLAPolicy
from src.sla.domain.engine import SLAEngine

__all__ = [
    # Entities
    "Complaint",
    "EscalationLedger",
    # Value Objects & Services
    "EscalationEvent",
    "SLAPolicy",
    "SLAEngine",
]
