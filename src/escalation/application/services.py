"""
Escalation Application Services
===============================

Application services orchestrate business logic and coordinate between
domain entities and the store / notification ports.

Following SOLID principles:
- Single Responsibility: the engine decides, the store persists, the port delivers
- Dependency Inversion: depend on abstractions (ports), not concrete implementations
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from src.core import (
    ApplicationException,
    ComplaintAlreadyResolvedException,
    EscalationConflictException,
    ResourceNotFoundException,
    ValidationException,
)
from src.escalation.domain import (
    AssignmentEntry,
    BreachEvaluator,
    Complaint,
    EscalationHistoryEntry,
    EscalationNotice,
    EscalationPolicy,
    EscalationStats,
    SweepSummary,
    breach_reason,
    manual_reason,
)
from src.escalation.domain.entities import EscalationOutcome
from src.shared.infrastructure.locks import KeyedLock
from src.shared.infrastructure.logging import get_context_logger, get_logger, log_latency

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Ports (Dependency Inversion) ==========

class IEscalationStore(ABC):
    """Persistence boundary for complaints' escalation slice and its history."""

    @abstractmethod
    async def list_open_complaints(self) -> List[Complaint]:
        """All complaints whose status is not resolved, oldest first."""

    @abstractmethod
    async def get_complaint(self, complaint_id: int) -> Optional[Complaint]:
        """Fresh read of a single complaint."""

    @abstractmethod
    async def record_escalation(
        self,
        complaint_id: int,
        expected_level: int,
        new_level: int,
        escalated_at: datetime,
        reason: str,
    ) -> EscalationHistoryEntry:
        """
        Write the new level and append its history row atomically.

        Raises EscalationConflictException when the stored level is no
        longer expected_level.
        """

    @abstractmethod
    async def mark_notified(self, entry_id: int, notified_at: datetime) -> None:
        """Stamp a history row once its notification was delivered."""

    @abstractmethod
    async def get_history(self, complaint_id: int) -> List[EscalationHistoryEntry]:
        """History rows of a complaint ordered by creation."""

    @abstractmethod
    async def assign(
        self,
        complaint_id: int,
        admin_id: int,
        assigned_by: str,
        assigned_at: datetime,
        note: Optional[str] = None,
    ) -> AssignmentEntry:
        """Set the assignee and append the attribution row atomically."""

    @abstractmethod
    async def list_escalated(self, include_resolved: bool = False) -> List[Complaint]:
        """Complaints with a level above zero, highest level first."""

    @abstractmethod
    async def get_stats(self, critical_level: int) -> EscalationStats:
        """Aggregate counts over unresolved complaints."""


class INotificationPort(ABC):
    """Outbound delivery of escalation notices."""

    @abstractmethod
    async def send(self, notice: EscalationNotice) -> bool:
        """
        Deliver the notice to every tier it names.

        Returns True when delivery succeeded. Must not raise; failures are
        logged by the implementation and reported as False.
        """


# ========== Application Services ==========

class EscalationEngine:
    """
    Evaluates open complaints and advances their escalation level.

    One engine instance is shared by the scheduler and the operator
    surface. Work on a single complaint (re-read, decide, persist,
    notify) runs under that complaint's lock, so a sweep and a manual
    escalation never interleave on the same complaint.
    """

    def __init__(
        self,
        store: IEscalationStore,
        notifier: INotificationPort,
        evaluator: BreachEvaluator,
        policy: Optional[EscalationPolicy] = None,
        notification_timeout: float = 10.0,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._notifier = notifier
        self._evaluator = evaluator
        self._policy = policy or EscalationPolicy()
        self._notification_timeout = notification_timeout
        self._clock = clock
        self._locks = KeyedLock()

    @property
    def policy(self) -> EscalationPolicy:
        return self._policy

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepSummary:
        """
        Evaluate every open complaint once.

        Failures on one complaint are logged and counted; a failure to
        fetch the candidate set propagates (StoreUnavailableException).
        """
        now = now or self._clock()
        sweep_log = get_context_logger(__name__, sweep_id=uuid4().hex[:12])
        summary = SweepSummary(started_at=now)

        with log_latency(sweep_log, "escalation_sweep"):
            candidates = await self._store.list_open_complaints()
            sweep_log.info("Escalation sweep started", extra={"candidates": len(candidates)})

            for candidate in candidates:
                summary.processed += 1
                try:
                    outcome = await self._process_candidate(candidate, now, sweep_log)
                except EscalationConflictException as e:
                    sweep_log.warning(
                        "Escalation skipped after concurrent update",
                        extra={"complaint_id": candidate.id, "expected_level": e.expected_level},
                    )
                    continue
                except Exception as e:
                    summary.failed += 1
                    sweep_log.error(
                        "Escalation failed for complaint",
                        extra={
                            "complaint_id": candidate.id,
                            "error_type": type(e).__name__,
                            "error": str(e),
                        },
                    )
                    continue

                if outcome is not None:
                    summary.escalated += 1
                    if outcome.notified:
                        summary.notified += 1

        summary.finished_at = self._clock()
        sweep_log.info("Escalation sweep finished", extra=summary.to_dict())
        return summary

    async def _process_candidate(self, candidate: Complaint, now: datetime, log) -> Optional[EscalationOutcome]:
        verdict = self._evaluator.evaluate(candidate.created_at, candidate.priority, now)
        if not verdict.breached:
            return None
        if not self._policy.cooldown_elapsed(candidate.last_escalated_at, now):
            return None

        async with self._locks.hold(candidate.id):
            complaint = await self._store.get_complaint(candidate.id)
            if complaint is None or complaint.is_resolved:
                return None
            # the snapshot may be stale; decide on the fresh row
            if not self._policy.cooldown_elapsed(complaint.last_escalated_at, now):
                return None

            reason = breach_reason(verdict.hours_overdue, complaint.priority)
            escalated, entry = await self._persist(complaint, reason, now)
            log.info(
                "Complaint escalated",
                extra={
                    "complaint_id": complaint.id,
                    "priority": complaint.priority,
                    **verdict.to_dict(),
                    "level": escalated.escalation_level,
                },
            )
            notified = await self._notify(escalated, entry, verdict.hours_overdue)

        return EscalationOutcome(complaint=escalated, entry=entry, notified=notified)

    async def manual_escalate(
        self,
        complaint_id: int,
        operator: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> EscalationOutcome:
        """
        Raise a complaint's level by exactly one on operator request.

        Ignores the cooldown; the operator is recorded in the history reason.
        """
        if not operator or not operator.strip():
            raise ValidationException("operator identity is required")
        now = now or self._clock()

        async with self._locks.hold(complaint_id):
            complaint = await self._require_open(complaint_id)
            history_reason = manual_reason(operator.strip(), reason)
            escalated, entry = await self._persist(complaint, history_reason, now)
            logger.info(
                "Complaint escalated manually",
                extra={
                    "complaint_id": complaint_id,
                    "operator": operator,
                    "level": escalated.escalation_level,
                },
            )
            verdict = self._evaluator.evaluate(complaint.created_at, complaint.priority, now)
            notified = await self._notify(escalated, entry, verdict.hours_overdue)

        return EscalationOutcome(complaint=escalated, entry=entry, notified=notified)

    async def assign_complaint(
        self,
        complaint_id: int,
        admin_id: int,
        operator: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AssignmentEntry:
        """Assign a complaint to an admin; escalation fields stay untouched."""
        if not operator or not operator.strip():
            raise ValidationException("operator identity is required")
        now = now or self._clock()

        async with self._locks.hold(complaint_id):
            await self._require_open(complaint_id)
            entry = await self._store.assign(complaint_id, admin_id, operator.strip(), now, note)

        logger.info(
            "Complaint assigned",
            extra={"complaint_id": complaint_id, "admin_id": admin_id, "operator": operator},
        )
        return entry

    async def get_history(self, complaint_id: int) -> List[EscalationHistoryEntry]:
        complaint = await self._store.get_complaint(complaint_id)
        if complaint is None:
            raise ResourceNotFoundException("Complaint", complaint_id)
        return await self._store.get_history(complaint_id)

    async def get_stats(self) -> EscalationStats:
        return await self._store.get_stats(self._policy.critical_level)

    async def list_escalated(self, include_resolved: bool = False) -> List[Complaint]:
        return await self._store.list_escalated(include_resolved)

    # ========== Helpers ==========

    async def _require_open(self, complaint_id: int) -> Complaint:
        complaint = await self._store.get_complaint(complaint_id)
        if complaint is None:
            raise ResourceNotFoundException("Complaint", complaint_id)
        if complaint.is_resolved:
            raise ComplaintAlreadyResolvedException(complaint_id)
        return complaint

    async def _persist(
        self, complaint: Complaint, reason: str, now: datetime
    ) -> Tuple[Complaint, EscalationHistoryEntry]:
        new_level = complaint.escalation_level + 1
        entry = await self._store.record_escalation(
            complaint.id,
            expected_level=complaint.escalation_level,
            new_level=new_level,
            escalated_at=now,
            reason=reason,
        )
        return complaint.escalated_to(new_level, now), entry

    async def _notify(self, complaint: Complaint, entry: EscalationHistoryEntry, hours_overdue: int) -> bool:
        """Best-effort delivery; runs only after the level was persisted."""
        level = complaint.escalation_level
        notice = EscalationNotice.for_complaint(
            complaint,
            hours_overdue=hours_overdue,
            urgency=self._policy.urgency_for(level),
            tiers=self._policy.tiers_for(level),
            reason=entry.reason,
            history_entry_id=entry.id,
        )

        try:
            delivered = await asyncio.wait_for(
                self._notifier.send(notice), timeout=self._notification_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Escalation notification timed out",
                extra={"complaint_id": complaint.id, "timeout_seconds": self._notification_timeout},
            )
            return False
        except Exception as e:
            logger.error(
                "Escalation notification raised",
                extra={"complaint_id": complaint.id, "error": str(e)},
            )
            return False

        if not delivered:
            logger.warning(
                "Escalation notification not delivered",
                extra={"complaint_id": complaint.id, "level": level, "tiers": notice.tiers},
            )
            return False

        if entry.id is not None:
            try:
                await self._store.mark_notified(entry.id, self._clock())
            except ApplicationException as e:
                logger.warning(
                    "Could not stamp notification time",
                    extra={"complaint_id": complaint.id, "entry_id": entry.id, "error": str(e)},
                )
        return True
