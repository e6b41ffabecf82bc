"""
Escalation Application DTOs
===========================

Data Transfer Objects for the operator API.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Literal
from datetime import datetime

from src.escalation.domain import (
    AssignmentEntry,
    Complaint,
    EscalationHistoryEntry,
    EscalationOutcome,
    EscalationStats,
    SweepSummary,
)


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["high", "medium", "low"]
ComplaintStatusStr = Literal["new", "under-review", "resolved"]
SchedulerStateStr = Literal["idle", "running", "stopped"]


# ========== Request DTOs ==========

class ManualEscalationRequest(BaseModel):
    """Operator request to raise a complaint's escalation level by one."""
    operator: str = Field(..., min_length=1, max_length=255, description="Acting operator identity")
    reason: Optional[str] = Field(None, max_length=1000, description="Optional justification")

    @field_validator("operator")
    @classmethod
    def validate_operator(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("operator cannot be blank")
        return v.strip()


class AssignmentRequest(BaseModel):
    """Operator request to assign a complaint to an admin."""
    admin_id: int = Field(..., ge=1, description="Admin user receiving the complaint")
    operator: str = Field(..., min_length=1, max_length=255, description="Acting operator identity")
    note: Optional[str] = Field(None, max_length=1000)


# ========== Response DTOs ==========

class SweepResponse(BaseModel):
    """Response model for a completed sweep."""
    processed: int
    escalated: int
    failed: int = 0
    notified: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def from_summary(cls, summary: SweepSummary) -> "SweepResponse":
        return cls(
            processed=summary.processed,
            escalated=summary.escalated,
            failed=summary.failed,
            notified=summary.notified,
            started_at=summary.started_at,
            finished_at=summary.finished_at,
        )


class ManualEscalationResponse(BaseModel):
    """Response model for a manual escalation."""
    complaint_id: int
    new_level: int
    reason: str
    notified: bool

    @classmethod
    def from_outcome(cls, outcome: EscalationOutcome) -> "ManualEscalationResponse":
        return cls(
            complaint_id=outcome.complaint.id,
            new_level=outcome.new_level,
            reason=outcome.entry.reason,
            notified=outcome.notified,
        )


class AssignmentResponse(BaseModel):
    """Response model for an assignment attribution entry."""
    id: Optional[int]
    complaint_id: int
    admin_id: int
    assigned_by: str
    note: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: AssignmentEntry) -> "AssignmentResponse":
        return cls(
            id=entry.id,
            complaint_id=entry.complaint_id,
            admin_id=entry.admin_id,
            assigned_by=entry.assigned_by,
            note=entry.note,
            created_at=entry.created_at,
        )


class HistoryEntryResponse(BaseModel):
    """Response model for one escalation history row."""
    id: Optional[int]
    complaint_id: int
    level: int
    reason: str
    created_at: datetime
    notified_at: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: EscalationHistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            complaint_id=entry.complaint_id,
            level=entry.level,
            reason=entry.reason,
            created_at=entry.created_at,
            notified_at=entry.notified_at,
        )


class EscalatedComplaintResponse(BaseModel):
    """Response model for a complaint in the escalated list."""
    id: int
    priority: PriorityStr
    status: ComplaintStatusStr
    category: Optional[str] = None
    created_at: datetime
    escalation_level: int
    escalated_at: Optional[datetime] = None
    assigned_to: Optional[int] = None

    @classmethod
    def from_domain(cls, complaint: Complaint) -> "EscalatedComplaintResponse":
        return cls(
            id=complaint.id,
            priority=complaint.priority,
            status=complaint.status,
            category=complaint.category,
            created_at=complaint.created_at,
            escalation_level=complaint.escalation_level,
            escalated_at=complaint.last_escalated_at,
            assigned_to=complaint.assigned_to,
        )


class PriorityBreakdownResponse(BaseModel):
    priority: str
    count: int
    escalated: int


class EscalationStatsResponse(BaseModel):
    """Aggregate escalation statistics over unresolved complaints."""
    total_unresolved: int
    total_escalated: int
    critical_escalations: int = Field(..., description="Complaints at or above the critical level")
    avg_escalation_level: float
    by_priority: List[PriorityBreakdownResponse] = Field(default_factory=list)

    @classmethod
    def from_stats(cls, stats: EscalationStats) -> "EscalationStatsResponse":
        return cls(
            total_unresolved=stats.total_unresolved,
            total_escalated=stats.total_escalated,
            critical_escalations=stats.critical_escalations,
            avg_escalation_level=stats.avg_escalation_level,
            by_priority=[
                PriorityBreakdownResponse(priority=row.priority, count=row.count, escalated=row.escalated)
                for row in stats.by_priority
            ],
        )


class SchedulerStatusResponse(BaseModel):
    """Current scheduler state for the operator screen."""
    state: SchedulerStateStr
    interval_seconds: int
    last_sweep_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    last_summary: Optional[SweepResponse] = None
    last_error: Optional[str] = None
