"""
Escalation Domain Layer
=======================

Domain layer for the escalation module.

Contains:
- Entities: Complaint, EscalationHistoryEntry, AssignmentEntry, notices and summaries
- Value Objects: SLAPolicy, EscalationPolicy, BreachVerdict
- Domain Services: BreachEvaluator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.escalation.domain.entities import (
    Complaint,
    EscalationHistoryEntry,
    AssignmentEntry,
    EscalationNotice,
    EscalationOutcome,
    SweepSummary,
    EscalationStats,
    PriorityBreakdown,
)
from src.escalation.domain.value_objects import (
    SLAPolicy,
    BreachEvaluator,
    BreachVerdict,
    EscalationPolicy,
    breach_reason,
    manual_reason,
)

__all__ = [
    # Entities
    "Complaint",
    "EscalationHistoryEntry",
    "AssignmentEntry",
    "EscalationNotice",
    "EscalationOutcome",
    "SweepSummary",
    "EscalationStats",
    "PriorityBreakdown",
    # Value Objects & Services
    "SLAPolicy",
    "BreachEvaluator",
    "BreachVerdict",
    "EscalationPolicy",
    "breach_reason",
    "manual_reason",
]
