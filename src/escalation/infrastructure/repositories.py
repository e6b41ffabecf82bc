"""
Escalation Infrastructure Repositories
======================================

Concrete implementations of the escalation store port and the policy loader.

- SQLAlchemyEscalationStore: relational store, one transaction per operation
- InMemoryEscalationStore: process-local store for tests and local runs
- YAMLPolicyLoader: builds the SLA / escalation policies at startup
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import ComplaintStatus, Priority, Settings
from src.core import (
    ConfigurationException,
    EscalationConflictException,
    ResourceNotFoundException,
    StoreUnavailableException,
)
from src.escalation.application import IEscalationStore
from src.escalation.domain import (
    AssignmentEntry,
    Complaint,
    EscalationHistoryEntry,
    EscalationPolicy,
    EscalationStats,
    PriorityBreakdown,
    SLAPolicy,
)
from src.escalation.infrastructure.models import (
    AssignmentHistoryModel,
    ComplaintModel,
    EscalationHistoryModel,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyEscalationStore(IEscalationStore):
    """
    SQLAlchemy implementation of the escalation store.

    Every operation runs in its own session and transaction so that a
    failure on one complaint never poisons the next one. Driver and
    SQLAlchemy errors surface as StoreUnavailableException.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "Escalation store operation failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise StoreUnavailableException(operation, e) from e

    @staticmethod
    def _to_complaint(model: ComplaintModel) -> Complaint:
        return Complaint(
            id=model.id,
            priority=model.priority,
            status=model.status,
            created_at=_as_utc(model.created_at),
            escalation_level=model.escalation_level or 0,
            last_escalated_at=_as_utc(model.escalated_at),
            category=model.category,
            description=model.description,
            email=model.email,
            is_anonymous=bool(model.is_anonymous),
            assigned_to=model.assigned_to,
            assigned_at=_as_utc(model.assigned_at),
        )

    @staticmethod
    def _to_entry(model: EscalationHistoryModel) -> EscalationHistoryEntry:
        return EscalationHistoryEntry(
            id=model.id,
            complaint_id=model.complaint_id,
            level=model.escalation_level,
            reason=model.reason or "",
            created_at=_as_utc(model.created_at),
            notified_at=_as_utc(model.notified_at),
        )

    async def list_open_complaints(self) -> List[Complaint]:
        async with self._transaction("list_open_complaints") as session:
            stmt = (
                select(ComplaintModel)
                .where(ComplaintModel.status != ComplaintStatus.RESOLVED)
                .order_by(ComplaintModel.created_at.asc(), ComplaintModel.id.asc())
            )
            result = await session.execute(stmt)
            return [self._to_complaint(m) for m in result.scalars().all()]

    async def get_complaint(self, complaint_id: int) -> Optional[Complaint]:
        async with self._transaction("get_complaint") as session:
            model = await session.get(ComplaintModel, complaint_id)
            return self._to_complaint(model) if model else None

    async def record_escalation(
        self,
        complaint_id: int,
        expected_level: int,
        new_level: int,
        escalated_at: datetime,
        reason: str,
    ) -> EscalationHistoryEntry:
        async with self._transaction("record_escalation") as session:
            stmt = (
                update(ComplaintModel)
                .where(
                    ComplaintModel.id == complaint_id,
                    ComplaintModel.escalation_level == expected_level,
                    ComplaintModel.status != ComplaintStatus.RESOLVED,
                )
                .values(escalation_level=new_level, escalated_at=escalated_at)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)

            if result.rowcount != 1:
                current = await session.scalar(
                    select(ComplaintModel.escalation_level).where(ComplaintModel.id == complaint_id)
                )
                if current is None:
                    raise ResourceNotFoundException("Complaint", complaint_id)
                raise EscalationConflictException(complaint_id, expected_level, current)

            row = EscalationHistoryModel(
                complaint_id=complaint_id,
                escalation_level=new_level,
                reason=reason,
                created_at=escalated_at,
            )
            session.add(row)
            await session.flush()
            return self._to_entry(row)

    async def mark_notified(self, entry_id: int, notified_at: datetime) -> None:
        async with self._transaction("mark_notified") as session:
            await session.execute(
                update(EscalationHistoryModel)
                .where(
                    EscalationHistoryModel.id == entry_id,
                    EscalationHistoryModel.notified_at.is_(None),
                )
                .values(notified_at=notified_at)
                .execution_options(synchronize_session=False)
            )

    async def get_history(self, complaint_id: int) -> List[EscalationHistoryEntry]:
        async with self._transaction("get_history") as session:
            stmt = (
                select(EscalationHistoryModel)
                .where(EscalationHistoryModel.complaint_id == complaint_id)
                .order_by(EscalationHistoryModel.created_at.asc(), EscalationHistoryModel.id.asc())
            )
            result = await session.execute(stmt)
            return [self._to_entry(m) for m in result.scalars().all()]

    async def assign(
        self,
        complaint_id: int,
        admin_id: int,
        assigned_by: str,
        assigned_at: datetime,
        note: Optional[str] = None,
    ) -> AssignmentEntry:
        async with self._transaction("assign") as session:
            model = await session.get(ComplaintModel, complaint_id)
            if model is None:
                raise ResourceNotFoundException("Complaint", complaint_id)

            model.assigned_to = admin_id
            model.assigned_at = assigned_at
            row = AssignmentHistoryModel(
                complaint_id=complaint_id,
                admin_id=admin_id,
                assigned_by=assigned_by,
                note=note,
                created_at=assigned_at,
            )
            session.add(row)
            await session.flush()

            return AssignmentEntry(
                id=row.id,
                complaint_id=complaint_id,
                admin_id=admin_id,
                assigned_by=assigned_by,
                note=note,
                created_at=_as_utc(row.created_at),
            )

    async def list_escalated(self, include_resolved: bool = False) -> List[Complaint]:
        async with self._transaction("list_escalated") as session:
            stmt = select(ComplaintModel).where(ComplaintModel.escalation_level > 0)
            if not include_resolved:
                stmt = stmt.where(ComplaintModel.status != ComplaintStatus.RESOLVED)
            stmt = stmt.order_by(
                ComplaintModel.escalation_level.desc(),
                ComplaintModel.created_at.asc(),
            )
            result = await session.execute(stmt)
            return [self._to_complaint(m) for m in result.scalars().all()]

    async def get_stats(self, critical_level: int) -> EscalationStats:
        escalated = case((ComplaintModel.escalation_level > 0, 1), else_=0)
        critical = case((ComplaintModel.escalation_level >= critical_level, 1), else_=0)
        unresolved = ComplaintModel.status != ComplaintStatus.RESOLVED

        async with self._transaction("get_stats") as session:
            totals = (await session.execute(
                select(
                    func.count(ComplaintModel.id),
                    func.coalesce(func.sum(escalated), 0),
                    func.coalesce(func.sum(critical), 0),
                    func.avg(ComplaintModel.escalation_level),
                ).where(unresolved)
            )).one()

            rows = (await session.execute(
                select(
                    ComplaintModel.priority,
                    func.count(ComplaintModel.id),
                    func.coalesce(func.sum(escalated), 0),
                )
                .where(unresolved)
                .group_by(ComplaintModel.priority)
            )).all()

        total, total_escalated, critical_count, avg_level = totals
        by_priority = sorted(
            (PriorityBreakdown(priority=p, count=int(c), escalated=int(e)) for p, c, e in rows),
            key=lambda r: _PRIORITY_ORDER.get(r.priority, len(_PRIORITY_ORDER)),
        )
        return EscalationStats(
            total_unresolved=int(total),
            total_escalated=int(total_escalated),
            critical_escalations=int(critical_count),
            avg_escalation_level=round(float(avg_level), 2) if avg_level is not None else 0.0,
            by_priority=by_priority,
        )


class InMemoryEscalationStore(IEscalationStore):
    """
    Process-local escalation store.

    Holds copies of complaints and history rows; every mutating call runs
    under one asyncio lock so the level write and the history append are
    atomic with respect to other callers.
    """

    def __init__(self) -> None:
        self._complaints: Dict[int, Complaint] = {}
        self._history: Dict[int, List[EscalationHistoryEntry]] = {}
        self._assignments: Dict[int, List[AssignmentEntry]] = {}
        self._lock = asyncio.Lock()
        self._next_complaint_id = 1
        self._next_entry_id = 1
        self._next_assignment_id = 1

    # ========== Seeding helpers (intake side) ==========

    def add_complaint(self, complaint: Complaint) -> Complaint:
        if complaint.id is None:
            complaint = replace(complaint, id=self._next_complaint_id)
        self._next_complaint_id = max(self._next_complaint_id, complaint.id + 1)
        self._complaints[complaint.id] = replace(complaint)
        self._history.setdefault(complaint.id, [])
        return replace(complaint)

    def set_status(self, complaint_id: int, status: str) -> None:
        complaint = self._complaints[complaint_id]
        self._complaints[complaint_id] = replace(complaint, status=status)

    def assignments_for(self, complaint_id: int) -> List[AssignmentEntry]:
        return list(self._assignments.get(complaint_id, []))

    # ========== IEscalationStore ==========

    async def list_open_complaints(self) -> List[Complaint]:
        open_complaints = [replace(c) for c in self._complaints.values() if c.is_open]
        return sorted(open_complaints, key=lambda c: (c.created_at, c.id))

    async def get_complaint(self, complaint_id: int) -> Optional[Complaint]:
        complaint = self._complaints.get(complaint_id)
        return replace(complaint) if complaint else None

    async def record_escalation(
        self,
        complaint_id: int,
        expected_level: int,
        new_level: int,
        escalated_at: datetime,
        reason: str,
    ) -> EscalationHistoryEntry:
        async with self._lock:
            complaint = self._complaints.get(complaint_id)
            if complaint is None:
                raise ResourceNotFoundException("Complaint", complaint_id)
            if complaint.escalation_level != expected_level or complaint.is_resolved:
                raise EscalationConflictException(complaint_id, expected_level, complaint.escalation_level)

            self._complaints[complaint_id] = replace(
                complaint, escalation_level=new_level, last_escalated_at=escalated_at
            )
            entry = EscalationHistoryEntry(
                id=self._next_entry_id,
                complaint_id=complaint_id,
                level=new_level,
                reason=reason,
                created_at=escalated_at,
            )
            self._next_entry_id += 1
            self._history.setdefault(complaint_id, []).append(entry)
            return entry

    async def mark_notified(self, entry_id: int, notified_at: datetime) -> None:
        async with self._lock:
            for entries in self._history.values():
                for index, entry in enumerate(entries):
                    if entry.id == entry_id and entry.notified_at is None:
                        entries[index] = replace(entry, notified_at=notified_at)
                        return

    async def get_history(self, complaint_id: int) -> List[EscalationHistoryEntry]:
        entries = self._history.get(complaint_id, [])
        return sorted(entries, key=lambda e: (e.created_at, e.id))

    async def assign(
        self,
        complaint_id: int,
        admin_id: int,
        assigned_by: str,
        assigned_at: datetime,
        note: Optional[str] = None,
    ) -> AssignmentEntry:
        async with self._lock:
            complaint = self._complaints.get(complaint_id)
            if complaint is None:
                raise ResourceNotFoundException("Complaint", complaint_id)

            self._complaints[complaint_id] = replace(
                complaint, assigned_to=admin_id, assigned_at=assigned_at
            )
            entry = AssignmentEntry(
                id=self._next_assignment_id,
                complaint_id=complaint_id,
                admin_id=admin_id,
                assigned_by=assigned_by,
                note=note,
                created_at=assigned_at,
            )
            self._next_assignment_id += 1
            self._assignments.setdefault(complaint_id, []).append(entry)
            return entry

    async def list_escalated(self, include_resolved: bool = False) -> List[Complaint]:
        escalated = [
            replace(c) for c in self._complaints.values()
            if c.is_escalated and (include_resolved or c.is_open)
        ]
        return sorted(escalated, key=lambda c: (-c.escalation_level, c.created_at))

    async def get_stats(self, critical_level: int) -> EscalationStats:
        return EscalationStats.from_complaints(list(self._complaints.values()), critical_level)


class YAMLPolicyLoader:
    """
    Builds the SLA and escalation policies once at startup.

    Settings provide the defaults; an optional YAML file overrides them:

        sla_hours:
          high: 24
          medium: 48
          low: 72
        escalation:
          cooldown_hours: 24
          superadmin_level: 2
          critical_level: 3
    """

    def __init__(self, settings: Settings):
        self._settings = settings

    def load(self, path: Optional[Path] = None) -> Tuple[SLAPolicy, EscalationPolicy]:
        path = Path(path or self._settings.sla_config_path)
        thresholds = {
            Priority.HIGH: self._settings.sla_high_hours,
            Priority.MEDIUM: self._settings.sla_medium_hours,
            Priority.LOW: self._settings.sla_low_hours,
        }
        escalation = {
            "cooldown_hours": self._settings.escalation_cooldown_hours,
            "superadmin_level": self._settings.escalation_superadmin_level,
            "critical_level": self._settings.escalation_critical_level,
        }

        if path.exists():
            data = self._read(path)
            thresholds.update(data.get("sla_hours") or {})
            escalation.update(data.get("escalation") or {})
            logger.info("Escalation policy loaded from file", extra={"path": str(path)})
        else:
            logger.info("Policy file not found, using settings defaults", extra={"path": str(path)})

        try:
            sla_policy = SLAPolicy(thresholds=thresholds)
            escalation_policy = EscalationPolicy(**escalation)
        except ValidationError as e:
            raise ConfigurationException(f"Invalid escalation policy: {e}") from e

        logger.info(
            "Escalation policy ready",
            extra={"sla_hours": dict(sla_policy.thresholds), **escalation_policy.model_dump()},
        )
        return sla_policy, escalation_policy

    @staticmethod
    def _read(path: Path) -> dict:
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(f"Cannot parse policy file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationException(f"Policy file {path} must contain a mapping")
        return data
