"""
Escalation Infrastructure Layer
===============================

Infrastructure implementations for the escalation module:
- Models: SQLAlchemy ORM models
- Repositories: escalation stores and the policy loader
- External: Slack notifier with circuit breaker
- Scheduler: APScheduler-driven sweeps behind a single-flight gate
"""

from src.escalation.infrastructure.models import (
    ComplaintModel,
    EscalationHistoryModel,
    AssignmentHistoryModel,
)
from src.escalation.infrastructure.repositories import (
    SQLAlchemyEscalationStore,
    InMemoryEscalationStore,
    YAMLPolicyLoader,
)
from src.escalation.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    SlackEscalationNotifier,
)
from src.escalation.infrastructure.scheduler import EscalationScheduler

__all__ = [
    "ComplaintModel",
    "EscalationHistoryModel",
    "AssignmentHistoryModel",
    "SQLAlchemyEscalationStore",
    "InMemoryEscalationStore",
    "YAMLPolicyLoader",
    "CircuitBreaker",
    "CircuitState",
    "SlackEscalationNotifier",
    "EscalationScheduler",
]
