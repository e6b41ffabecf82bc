"""
Escalation Application Layer
============================

Application layer for the escalation module.

Contains:
- Services: EscalationEngine orchestrating evaluate / persist / notify
- Ports: store and notification interfaces
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and port interfaces,
but not on concrete infrastructure implementations.
"""

from src.escalation.application.dto import (
    ManualEscalationRequest,
    AssignmentRequest,
    SweepResponse,
    ManualEscalationResponse,
    AssignmentResponse,
    HistoryEntryResponse,
    EscalatedComplaintResponse,
    EscalationStatsResponse,
    PriorityBreakdownResponse,
    SchedulerStatusResponse,
)
from src.escalation.application.services import (
    EscalationEngine,
    IEscalationStore,
    INotificationPort,
    utc_now,
)

__all__ = [
    # DTOs
    "ManualEscalationRequest",
    "AssignmentRequest",
    "SweepResponse",
    "ManualEscalationResponse",
    "AssignmentResponse",
    "HistoryEntryResponse",
    "EscalatedComplaintResponse",
    "EscalationStatsResponse",
    "PriorityBreakdownResponse",
    "SchedulerStatusResponse",
    # Services
    "EscalationEngine",
    "utc_now",
    # Ports
    "IEscalationStore",
    "INotificationPort",
]
