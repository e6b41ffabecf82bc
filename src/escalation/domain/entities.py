"""
Escalation Domain Entities
==========================

Pure Python domain entities for complaint escalation.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional

from src.config import ComplaintStatus, Priority


@dataclass
class Complaint:
    """
    The slice of a complaint the escalation engine reads and updates.

    The complaint itself is owned by the intake system; only
    escalation_level, last_escalated_at and the assignment fields are
    written from here.
    """

    id: int
    priority: str
    status: str
    created_at: datetime

    escalation_level: int = 0
    last_escalated_at: Optional[datetime] = None

    # Snapshot fields carried into notifications
    category: Optional[str] = None
    description: Optional[str] = None
    email: Optional[str] = None
    is_anonymous: bool = False

    assigned_to: Optional[int] = None
    assigned_at: Optional[datetime] = None

    def __post_init__(self):
        if self.escalation_level < 0:
            raise ValueError("escalation_level cannot be negative")

    @property
    def is_resolved(self) -> bool:
        return self.status == ComplaintStatus.RESOLVED

    @property
    def is_open(self) -> bool:
        return not self.is_resolved

    @property
    def is_escalated(self) -> bool:
        return self.escalation_level > 0

    @property
    def reporter_email(self) -> Optional[str]:
        """Reporter address, hidden for anonymous submissions."""
        if self.is_anonymous:
            return None
        return self.email

    def escalated_to(self, level: int, at: datetime) -> "Complaint":
        """Copy of this complaint after reaching a new escalation level."""
        if level <= self.escalation_level:
            raise ValueError(
                f"escalation level must increase (current {self.escalation_level}, got {level})"
            )
        return replace(self, escalation_level=level, last_escalated_at=at)


@dataclass(frozen=True)
class EscalationHistoryEntry:
    """
    Append-only audit row for one escalation.

    `level` is the level reached by this entry. Entries are never
    mutated except for notified_at, which the store sets once delivery
    succeeded.
    """

    id: Optional[int]
    complaint_id: int
    level: int
    reason: str
    created_at: datetime
    notified_at: Optional[datetime] = None


@dataclass(frozen=True)
class AssignmentEntry:
    """Attribution row recorded when an operator assigns a complaint."""

    id: Optional[int]
    complaint_id: int
    admin_id: int
    assigned_by: str
    created_at: datetime
    note: Optional[str] = None


@dataclass(frozen=True)
class EscalationNotice:
    """
    Content payload handed to the notification port.

    The port decides how to deliver; the engine decides that and to whom.
    """

    complaint_id: int
    priority: str
    status: str
    level: int
    hours_overdue: int
    urgency: str
    tiers: List[str]
    reason: str
    category: Optional[str] = None
    description: Optional[str] = None
    reporter_email: Optional[str] = None
    history_entry_id: Optional[int] = None

    @classmethod
    def for_complaint(
        cls,
        complaint: Complaint,
        hours_overdue: int,
        urgency: str,
        tiers: List[str],
        reason: str,
        history_entry_id: Optional[int] = None,
    ) -> "EscalationNotice":
        return cls(
            complaint_id=complaint.id,
            priority=complaint.priority,
            status=complaint.status,
            level=complaint.escalation_level,
            hours_overdue=hours_overdue,
            urgency=urgency,
            tiers=list(tiers),
            reason=reason,
            category=complaint.category,
            description=complaint.description,
            reporter_email=complaint.reporter_email,
            history_entry_id=history_entry_id,
        )


@dataclass(frozen=True)
class EscalationOutcome:
    """What a single escalation step produced."""

    complaint: Complaint
    entry: EscalationHistoryEntry
    notified: bool

    @property
    def new_level(self) -> int:
        return self.complaint.escalation_level


@dataclass
class SweepSummary:
    """Result of one pass over all open complaints."""

    processed: int = 0
    escalated: int = 0
    failed: int = 0
    notified: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "escalated": self.escalated,
            "failed": self.failed,
            "notified": self.notified,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class PriorityBreakdown:
    """Unresolved / escalated counts for one priority."""

    priority: str
    count: int = 0
    escalated: int = 0


@dataclass
class EscalationStats:
    """Aggregate view over unresolved complaints."""

    total_unresolved: int = 0
    total_escalated: int = 0
    critical_escalations: int = 0
    avg_escalation_level: float = 0.0
    by_priority: List[PriorityBreakdown] = field(default_factory=list)

    @classmethod
    def from_complaints(cls, complaints: List[Complaint], critical_level: int) -> "EscalationStats":
        """Aggregate over an in-memory list of complaints."""
        unresolved = [c for c in complaints if c.is_open]
        breakdown: Dict[str, PriorityBreakdown] = {}
        for complaint in unresolved:
            row = breakdown.setdefault(complaint.priority, PriorityBreakdown(priority=complaint.priority))
            row.count += 1
            if complaint.is_escalated:
                row.escalated += 1

        total = len(unresolved)
        level_sum = sum(c.escalation_level for c in unresolved)
        order = {p: i for i, p in enumerate([Priority.HIGH, Priority.MEDIUM, Priority.LOW])}

        return cls(
            total_unresolved=total,
            total_escalated=sum(1 for c in unresolved if c.is_escalated),
            critical_escalations=sum(1 for c in unresolved if c.escalation_level >= critical_level),
            avg_escalation_level=round(level_sum / total, 2) if total else 0.0,
            by_priority=sorted(breakdown.values(), key=lambda r: order.get(r.priority, len(order))),
        )
