"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base
from src.config import ComplaintStatus, Priority, SLAPhase


class ComplaintModel(Base):
    """
    Database model for the Complaint aggregate.

    Maps to the 'complaints' table. `escalation_history` holds the ledger
    as an ordered JSON list of {escalated_at, level, reason} records.
    """
    __tablename__ = "complaints"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Descriptive fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    submitted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Workflow
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=ComplaintStatus.PENDING.value, index=True)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.MEDIUM.value)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # SLA tracking
    sla_phase: Mapped[str] = mapped_column(String(20), nullable=False, default=SLAPhase.TRIAGE.value)
    sla_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    triage_sla_due: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    resolution_sla_due: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_due: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    response_sla_due: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    triage_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority_set_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Escalation (level is denormalized from the ledger for querying)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalation_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Timestamps
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ReportModel(Base):
    """
    Officer report filed against a complaint.

    Owned by the reporting subsystem; the SLA core only checks existence.
    """
    __tablename__ = "complaint_reports"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    complaint_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    submitted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
