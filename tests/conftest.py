"""Shared fixtures for escalation tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from src.config import ComplaintStatus, Priority
from src.escalation.application import EscalationEngine, INotificationPort
from src.escalation.domain import (
    BreachEvaluator,
    Complaint,
    EscalationNotice,
    EscalationPolicy,
    SLAPolicy,
)
from src.escalation.infrastructure import InMemoryEscalationStore

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


class RecordingNotifier(INotificationPort):
    """Notification port fake that records every notice it receives."""

    def __init__(self, result: bool = True, delay: float = 0.0, error: Optional[Exception] = None):
        self.result = result
        self.delay = delay
        self.error = error
        self.notices: List[EscalationNotice] = []

    async def send(self, notice: EscalationNotice) -> bool:
        self.notices.append(notice)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class SimulatedClock:
    """Mutable clock handed to the engine."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


@pytest.fixture
def clock() -> SimulatedClock:
    return SimulatedClock()


@pytest.fixture
def store() -> InMemoryEscalationStore:
    return InMemoryEscalationStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sla_policy() -> SLAPolicy:
    return SLAPolicy()


@pytest.fixture
def escalation_policy() -> EscalationPolicy:
    return EscalationPolicy()


@pytest.fixture
def engine(store, notifier, sla_policy, escalation_policy, clock) -> EscalationEngine:
    return EscalationEngine(
        store=store,
        notifier=notifier,
        evaluator=BreachEvaluator(sla_policy),
        policy=escalation_policy,
        notification_timeout=0.5,
        clock=clock,
    )


@pytest.fixture
def make_complaint(store):
    """Seed a complaint into the in-memory store."""

    def _make(
        complaint_id: int,
        priority: str = Priority.HIGH,
        status: str = ComplaintStatus.NEW,
        created_at: datetime = T0,
        **kwargs,
    ) -> Complaint:
        return store.add_complaint(
            Complaint(id=complaint_id, priority=priority, status=status, created_at=created_at, **kwargs)
        )

    return _make
