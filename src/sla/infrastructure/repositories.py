"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy,
plus the SLA policy provider.

This layer contains the data access logic - how we store and retrieve
entities from the database. The escalation ledger is serialized to its
JSON record layout here and nowhere else.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import yaml
from sqlalchemy import exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import ComplaintStatus, Priority, SLAPhase, Settings, VALID_PRIORITIES
from src.core.exceptions import (
    ConcurrencyConflictException,
    ConfigurationException,
    RepositoryException,
    ResourceNotFoundException,
)
from src.shared.infrastructure.logging import get_logger
from src.sla.application import IComplaintRepository, IReportDirectory
from src.sla.domain import Complaint, EscalationLedger, SLAPolicy
from src.sla.domain.value_objects import settings_to_policy_mapping
from src.sla.infrastructure.models import ComplaintModel, ReportModel

logger = get_logger(__name__)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC; drivers without tz support hand back naive values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_id(complaint_id: Optional[str]) -> Optional[UUID]:
    try:
        return UUID(str(complaint_id))
    except ValueError:
        return None


class SQLAlchemyComplaintRepository(IComplaintRepository):
    """
    SQLAlchemy implementation of the complaint repository.

    Each call runs in its own short session so that one complaint's
    write never shares a transaction with another's. `save` is a
    compare-and-swap on the version column.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ========== Mapping ==========

    @staticmethod
    def _to_domain(model: ComplaintModel) -> Complaint:
        return Complaint(
            id=str(model.id),
            title=model.title,
            description=model.description,
            category=model.category,
            submitted_by=model.submitted_by,
            status=ComplaintStatus(model.status),
            priority=Priority(model.priority),
            sla_phase=SLAPhase(model.sla_phase),
            sla_start=_utc(model.sla_start),
            triage_sla_due=_utc(model.triage_sla_due),
            resolution_sla_due=_utc(model.resolution_sla_due),
            sla_due=_utc(model.sla_due),
            response_sla_due=_utc(model.response_sla_due),
            triage_breached=model.triage_breached,
            priority_set_at=_utc(model.priority_set_at),
            escalation_history=EscalationLedger.from_records(model.escalation_history),
            assigned_to=model.assigned_to,
            assigned_at=_utc(model.assigned_at),
            acknowledged_at=_utc(model.acknowledged_at),
            submitted_at=_utc(model.submitted_at),
            closed_at=_utc(model.closed_at),
            updated_at=_utc(model.updated_at),
            version=model.version,
        )

    @staticmethod
    def _row_values(complaint: Complaint) -> Dict[str, Any]:
        return {
            "title": complaint.title,
            "description": complaint.description,
            "category": complaint.category,
            "submitted_by": complaint.submitted_by,
            "status": complaint.status.value,
            "priority": complaint.priority.value,
            "sla_phase": complaint.sla_phase.value,
            "sla_start": _utc(complaint.sla_start),
            "triage_sla_due": _utc(complaint.triage_sla_due),
            "resolution_sla_due": _utc(complaint.resolution_sla_due),
            "sla_due": _utc(complaint.sla_due),
            "response_sla_due": _utc(complaint.response_sla_due),
            "triage_breached": complaint.triage_breached,
            "priority_set_at": _utc(complaint.priority_set_at),
            "escalation_level": complaint.escalation_level,
            "escalation_history": complaint.escalation_history.to_records(),
            "assigned_to": complaint.assigned_to,
            "assigned_at": _utc(complaint.assigned_at),
            "acknowledged_at": _utc(complaint.acknowledged_at),
            "submitted_at": _utc(complaint.submitted_at),
            "closed_at": _utc(complaint.closed_at),
            "updated_at": _utc(complaint.updated_at) or datetime.now(timezone.utc),
        }

    async def _list(self, stmt) -> List[Complaint]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [self._to_domain(m) for m in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to query complaints: {e}") from e

    async def _count(self, stmt) -> int:
        async with self._session_factory() as session:
            return int(await session.scalar(stmt) or 0)

    # ========== Reads ==========

    async def get(self, complaint_id: str) -> Complaint:
        complaint_uuid = _parse_id(complaint_id)
        if complaint_uuid is None:
            raise ResourceNotFoundException("Complaint", complaint_id)

        async with self._session_factory() as session:
            model = await session.get(ComplaintModel, complaint_uuid)
            if model is None:
                raise ResourceNotFoundException("Complaint", complaint_id)
            return self._to_domain(model)

    async def query_breached(self, now: datetime) -> List[Complaint]:
        stmt = (
            select(ComplaintModel)
            .where(
                ComplaintModel.sla_due.is_not(None),
                ComplaintModel.sla_due < _utc(now),
                ComplaintModel.status != ComplaintStatus.RESOLVED.value,
            )
            .order_by(ComplaintModel.sla_due.asc())
        )
        return await self._list(stmt)

    async def query_triage_overdue(self, now: datetime) -> List[Complaint]:
        stmt = (
            select(ComplaintModel)
            .where(
                ComplaintModel.sla_phase == SLAPhase.TRIAGE.value,
                ComplaintModel.status == ComplaintStatus.PENDING.value,
                ComplaintModel.triage_sla_due.is_not(None),
                ComplaintModel.triage_sla_due <= _utc(now),
            )
            .order_by(ComplaintModel.triage_sla_due.asc())
        )
        return await self._list(stmt)

    async def query_triage_critical(self, now: datetime, window_hours: int) -> List[Complaint]:
        now = _utc(now)
        stmt = (
            select(ComplaintModel)
            .where(
                ComplaintModel.sla_phase == SLAPhase.TRIAGE.value,
                ComplaintModel.status == ComplaintStatus.PENDING.value,
                ComplaintModel.triage_sla_due > now,
                ComplaintModel.triage_sla_due <= now + timedelta(hours=window_hours),
            )
            .order_by(ComplaintModel.triage_sla_due.asc())
        )
        return await self._list(stmt)

    async def count_total(self) -> int:
        return await self._count(select(func.count()).select_from(ComplaintModel))

    def _overdue_conditions(self, now: datetime) -> list:
        return [
            ComplaintModel.sla_due.is_not(None),
            ComplaintModel.sla_due < _utc(now),
            ComplaintModel.status != ComplaintStatus.RESOLVED.value,
        ]

    async def count_overdue(self, now: datetime) -> int:
        stmt = select(func.count()).select_from(ComplaintModel).where(*self._overdue_conditions(now))
        return await self._count(stmt)

    async def count_overdue_by_priority(self, now: datetime) -> Dict[Priority, int]:
        stmt = (
            select(ComplaintModel.priority, func.count())
            .where(*self._overdue_conditions(now))
            .group_by(ComplaintModel.priority)
        )
        counts = {priority: 0 for priority in VALID_PRIORITIES}
        async with self._session_factory() as session:
            for priority, count in (await session.execute(stmt)).all():
                counts[Priority(priority)] = int(count)
        return counts

    async def count_resolved_on_time(self) -> int:
        stmt = select(func.count()).select_from(ComplaintModel).where(
            ComplaintModel.status == ComplaintStatus.RESOLVED.value,
            ComplaintModel.closed_at <= ComplaintModel.sla_due,
        )
        return await self._count(stmt)

    async def count_resolved_late(self) -> int:
        stmt = select(func.count()).select_from(ComplaintModel).where(
            ComplaintModel.status == ComplaintStatus.RESOLVED.value,
            ComplaintModel.closed_at > ComplaintModel.sla_due,
        )
        return await self._count(stmt)

    async def average_resolution_hours(self) -> Optional[float]:
        # Timestamp arithmetic differs per dialect, so average in Python
        stmt = select(ComplaintModel.submitted_at, ComplaintModel.closed_at).where(
            ComplaintModel.status == ComplaintStatus.RESOLVED.value,
            ComplaintModel.submitted_at.is_not(None),
            ComplaintModel.closed_at.is_not(None),
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        if not rows:
            return None
        total_hours = sum(
            (_utc(closed) - _utc(submitted)).total_seconds() / 3600 for submitted, closed in rows
        )
        return round(total_hours / len(rows), 2)

    # ========== Writes ==========

    async def create(self, complaint: Complaint) -> Complaint:
        complaint_uuid = _parse_id(complaint.id) if complaint.id else uuid4()
        if complaint_uuid is None:
            raise RepositoryException(f"Invalid complaint id: {complaint.id}")

        model = ComplaintModel(id=complaint_uuid, version=1, **self._row_values(complaint))
        try:
            async with self._session_factory() as session:
                session.add(model)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create complaint: {e}") from e

        complaint.id = str(complaint_uuid)
        complaint.version = 1
        return complaint

    async def save(self, complaint: Complaint, expected_version: int) -> Complaint:
        complaint_uuid = _parse_id(complaint.id)
        if complaint_uuid is None:
            raise ResourceNotFoundException("Complaint", complaint.id)

        stmt = (
            update(ComplaintModel)
            .where(
                ComplaintModel.id == complaint_uuid,
                ComplaintModel.version == expected_version,
            )
            .values(version=expected_version + 1, **self._row_values(complaint))
            .execution_options(synchronize_session=False)
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    current = await session.scalar(
                        select(ComplaintModel.version).where(ComplaintModel.id == complaint_uuid)
                    )
                    await session.rollback()
                    if current is None:
                        raise ResourceNotFoundException("Complaint", complaint.id)
                    raise ConcurrencyConflictException(complaint.id, expected_version, current)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save complaint {complaint.id}: {e}") from e

        complaint.version = expected_version + 1
        return complaint


class SQLAlchemyReportDirectory(IReportDirectory):
    """Report existence check against the reporting subsystem's table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def report_exists(self, complaint_id: str) -> bool:
        complaint_uuid = _parse_id(complaint_id)
        if complaint_uuid is None:
            return False

        stmt = select(exists().where(ReportModel.complaint_id == complaint_uuid))
        async with self._session_factory() as session:
            return bool(await session.scalar(stmt))


class YAMLPolicyProvider:
    """
    SLA policy provider: environment settings, optionally overridden by YAML.

    The policy is loaded once, eagerly; any invalid or missing duration
    raises ConfigurationException so that startup fails.

    YAML layout:
        triage_hours: 24
        triage_alert_lead_hours: 15
        resolution_hours: {high: 24, medium: 72, low: 168}
        response_hours: {high: 2, medium: 8, low: 24}
    """

    _YAML_KEYS = {
        "triage_hours": "triage_hours",
        "triage_alert_lead_hours": "triage_alert_lead_hours",
        "resolution_hours": "resolution_hours_by_priority",
        "response_hours": "response_hours_by_priority",
    }

    def __init__(self, settings: Settings):
        self._settings = settings
        self._policy = self._load_policy()

    def _load_policy(self) -> SLAPolicy:
        data = settings_to_policy_mapping(self._settings)

        if self._settings.sla_config_path is not None:
            data.update(self._read_overrides(Path(self._settings.sla_config_path)))

        policy = SLAPolicy.from_mapping(data)
        logger.info(
            "SLA policy loaded",
            extra={
                "triage_hours": policy.triage_hours,
                "triage_alert_lead_hours": policy.triage_alert_lead_hours,
            }
        )
        return policy

    def _read_overrides(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            logger.warning(f"SLA config file not found: {path}, using environment values")
            return {}

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(f"Invalid SLA config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationException(f"SLA config file {path} must contain a mapping")

        unknown = sorted(set(data) - set(self._YAML_KEYS))
        if unknown:
            raise ConfigurationException(
                f"Unknown keys in SLA config file {path}: {', '.join(unknown)}"
            )

        return {field: data[key] for key, field in self._YAML_KEYS.items() if key in data}

    def get_policy(self) -> SLAPolicy:
        """Get the loaded SLA policy."""
        return self._policy
