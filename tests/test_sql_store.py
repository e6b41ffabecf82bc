"""Tests for SQLAlchemyEscalationStore against in-memory SQLite."""

from datetime import timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from src.config import ComplaintStatus, Priority
from src.core import (
    EscalationConflictException,
    ResourceNotFoundException,
    StoreUnavailableException,
)
from src.escalation.application import EscalationEngine
from src.escalation.domain import BreachEvaluator, SLAPolicy
from src.escalation.infrastructure import (
    ComplaintModel,
    EscalationHistoryModel,
    SQLAlchemyEscalationStore,
)
from src.infrastructure.database import build_session_maker, create_tables

from tests.conftest import T0, RecordingNotifier, SimulatedClock, hours


@pytest_asyncio.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def sql_store(session_maker):
    return SQLAlchemyEscalationStore(session_maker)


@pytest.fixture
def seed(session_maker):
    async def _seed(complaint_id, priority=Priority.HIGH, status=ComplaintStatus.NEW,
                    created_at=T0, escalation_level=0, **kwargs):
        async with session_maker() as session:
            session.add(ComplaintModel(
                id=complaint_id,
                priority=priority,
                status=status,
                created_at=created_at,
                escalation_level=escalation_level,
                **kwargs,
            ))
            await session.commit()

    return _seed


class TestReads:
    @pytest.mark.asyncio
    async def test_open_complaints_exclude_resolved(self, sql_store, seed):
        await seed(1, created_at=T0 + hours(1))
        await seed(2, status=ComplaintStatus.RESOLVED)
        await seed(3, status=ComplaintStatus.UNDER_REVIEW, created_at=T0)

        complaints = await sql_store.list_open_complaints()

        assert [c.id for c in complaints] == [3, 1]
        assert complaints[0].created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_complaint(self, sql_store, seed):
        await seed(1, email="a@example.com", is_anonymous=True, category="billing")
        complaint = await sql_store.get_complaint(1)

        assert complaint.priority == Priority.HIGH
        assert complaint.created_at == T0
        assert complaint.reporter_email is None
        assert complaint.category == "billing"
        assert await sql_store.get_complaint(99) is None


class TestRecordEscalation:
    @pytest.mark.asyncio
    async def test_updates_level_and_appends_history(self, sql_store, seed):
        await seed(1)

        entry = await sql_store.record_escalation(1, 0, 1, T0 + hours(25), "SLA breach: 1h overdue (high priority)")
        complaint = await sql_store.get_complaint(1)
        history = await sql_store.get_history(1)

        assert entry.id is not None
        assert entry.level == 1
        assert complaint.escalation_level == 1
        assert complaint.last_escalated_at == T0 + hours(25)
        assert [(e.level, e.reason) for e in history] == [(1, "SLA breach: 1h overdue (high priority)")]

    @pytest.mark.asyncio
    async def test_stale_expected_level_conflicts(self, sql_store, seed):
        await seed(1, escalation_level=2)

        with pytest.raises(EscalationConflictException) as exc_info:
            await sql_store.record_escalation(1, 1, 2, T0, "late")

        assert exc_info.value.actual_level == 2
        assert await sql_store.get_history(1) == []

    @pytest.mark.asyncio
    async def test_resolved_complaint_conflicts(self, sql_store, seed):
        await seed(1, status=ComplaintStatus.RESOLVED)
        with pytest.raises(EscalationConflictException):
            await sql_store.record_escalation(1, 0, 1, T0, "too late")
        assert (await sql_store.get_complaint(1)).escalation_level == 0

    @pytest.mark.asyncio
    async def test_unknown_complaint(self, sql_store):
        with pytest.raises(ResourceNotFoundException):
            await sql_store.record_escalation(5, 0, 1, T0, "missing")

    @pytest.mark.asyncio
    async def test_mark_notified_once(self, sql_store, seed):
        await seed(1)
        entry = await sql_store.record_escalation(1, 0, 1, T0, "r")

        await sql_store.mark_notified(entry.id, T0 + hours(1))
        await sql_store.mark_notified(entry.id, T0 + hours(2))

        history = await sql_store.get_history(1)
        assert history[0].notified_at == T0 + hours(1)

    @pytest.mark.asyncio
    async def test_history_in_creation_order(self, sql_store, seed):
        await seed(1)
        await sql_store.record_escalation(1, 0, 1, T0 + hours(25), "first")
        await sql_store.record_escalation(1, 1, 2, T0 + hours(49), "second")
        await sql_store.record_escalation(1, 2, 3, T0 + hours(73), "third")

        history = await sql_store.get_history(1)
        assert [e.level for e in history] == [1, 2, 3]
        assert all(e.created_at.tzinfo == timezone.utc for e in history)


class TestAssignAndViews:
    @pytest.mark.asyncio
    async def test_assign(self, sql_store, seed):
        await seed(1, escalation_level=1)
        entry = await sql_store.assign(1, 7, "alice", T0 + hours(2), note="billing")
        complaint = await sql_store.get_complaint(1)

        assert entry.id is not None
        assert entry.assigned_by == "alice"
        assert complaint.assigned_to == 7
        assert complaint.assigned_at == T0 + hours(2)
        assert complaint.escalation_level == 1

    @pytest.mark.asyncio
    async def test_assign_unknown(self, sql_store):
        with pytest.raises(ResourceNotFoundException):
            await sql_store.assign(3, 7, "alice", T0)

    @pytest.mark.asyncio
    async def test_list_escalated(self, sql_store, seed):
        await seed(1, escalation_level=1, created_at=T0)
        await seed(2, escalation_level=2, created_at=T0 + hours(1))
        await seed(3, escalation_level=1, created_at=T0 - hours(1))
        await seed(4, escalation_level=3, status=ComplaintStatus.RESOLVED)
        await seed(5)

        assert [c.id for c in await sql_store.list_escalated()] == [2, 3, 1]
        assert [c.id for c in await sql_store.list_escalated(include_resolved=True)] == [4, 2, 3, 1]

    @pytest.mark.asyncio
    async def test_stats(self, sql_store, seed):
        await seed(1, priority=Priority.HIGH, escalation_level=3)
        await seed(2, priority=Priority.HIGH, escalation_level=1)
        await seed(3, priority=Priority.LOW)
        await seed(4, priority=Priority.MEDIUM, escalation_level=4, status=ComplaintStatus.RESOLVED)

        stats = await sql_store.get_stats(critical_level=3)

        assert stats.total_unresolved == 3
        assert stats.total_escalated == 2
        assert stats.critical_escalations == 1
        assert stats.avg_escalation_level == pytest.approx(1.33)
        assert [(r.priority, r.count, r.escalated) for r in stats.by_priority] == [
            ("high", 2, 2),
            ("low", 1, 0),
        ]

    @pytest.mark.asyncio
    async def test_stats_empty(self, sql_store):
        stats = await sql_store.get_stats(critical_level=3)
        assert stats.total_unresolved == 0
        assert stats.avg_escalation_level == 0.0
        assert stats.by_priority == []


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_unreachable_database(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/db.sqlite")
        store = SQLAlchemyEscalationStore(build_session_maker(engine))
        try:
            with pytest.raises(StoreUnavailableException) as exc_info:
                await store.list_open_complaints()
            assert exc_info.value.operation == "list_open_complaints"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_missing_tables(self):
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
        store = SQLAlchemyEscalationStore(build_session_maker(engine))
        try:
            with pytest.raises(StoreUnavailableException):
                await store.get_stats(critical_level=3)
        finally:
            await engine.dispose()


class TestEngineOnSQL:
    @pytest.mark.asyncio
    async def test_escalation_lifecycle(self, sql_store, seed, session_maker):
        await seed(1, priority=Priority.HIGH)
        notifier = RecordingNotifier()
        clock = SimulatedClock(T0 + hours(25))
        engine = EscalationEngine(sql_store, notifier, BreachEvaluator(SLAPolicy()), clock=clock)

        await engine.run_sweep(T0 + hours(25))
        await engine.run_sweep(T0 + hours(30))
        await engine.run_sweep(T0 + hours(49))

        history = await engine.get_history(1)
        assert [e.level for e in history] == [1, 2]
        assert all(e.notified_at is not None for e in history)

        async with session_maker() as session:
            rows = (await session.execute(
                EscalationHistoryModel.__table__.select()
            )).all()
        assert len(rows) == 2
