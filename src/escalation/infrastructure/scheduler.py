"""
Escalation Scheduler
====================

Owns the timing of automatic sweeps and the manual trigger.

- One-shot delayed first sweep, then a sweep every `interval_seconds`
- The next run is scheduled when the previous sweep completes, so a slow
  sweep pushes the cadence instead of stacking runs
- Timer ticks and manual triggers share one SingleFlightGate: a manual
  trigger during a sweep is rejected, a timer tick during a sweep is skipped
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.config import SchedulerState
from src.core import ApplicationException, ConcurrentSweepRejectedException
from src.escalation.application import EscalationEngine
from src.escalation.domain import SweepSummary
from src.shared.infrastructure.locks import SingleFlightGate
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class EscalationScheduler:
    """
    Wrapper around APScheduler driving escalation sweeps.

    States: STOPPED until start(), IDLE between sweeps, RUNNING while a
    sweep (timer or manual) is in flight. stop() cancels the pending run
    and lets an in-flight sweep finish; start() may be called again.
    """

    JOB_ID = "escalation_sweep"

    def __init__(
        self,
        engine: EscalationEngine,
        interval_seconds: int = 3600,
        initial_delay_seconds: float = 30.0,
        gate: Optional[SingleFlightGate] = None,
    ):
        self._engine = engine
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._gate = gate or SingleFlightGate()
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._started = False

        self.last_sweep_at: Optional[datetime] = None
        self.last_summary: Optional[SweepSummary] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> str:
        if self._gate.busy:
            return SchedulerState.RUNNING
        if self._started:
            return SchedulerState.IDLE
        return SchedulerState.STOPPED

    @property
    def is_running(self) -> bool:
        """True while automatic sweeps are scheduled."""
        return self._started

    @property
    def next_run_at(self) -> Optional[datetime]:
        if self._scheduler is None or not self._started:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None

    async def start(self) -> None:
        """Start automatic sweeps; the first one runs after the initial delay."""
        if self._started:
            logger.warning("Escalation scheduler already running")
            return
        if self.interval_seconds <= 0:
            logger.info("Automatic escalation sweeps disabled (interval is 0)")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.start()
        self._started = True
        self._schedule_next(self.initial_delay_seconds)

        logger.info(
            "Escalation scheduler started",
            extra={
                "interval_seconds": self.interval_seconds,
                "initial_delay_seconds": self.initial_delay_seconds,
            }
        )

    async def stop(self) -> None:
        """Cancel the pending run. An in-flight sweep is allowed to finish."""
        if not self._started:
            return

        self._started = False
        if self._scheduler:
            if self._scheduler.get_job(self.JOB_ID):
                self._scheduler.remove_job(self.JOB_ID)

            # shutdown() cancels running job coroutines, so drain the sweep first
            if self._gate.busy:
                logger.info("Waiting for in-flight escalation sweep to finish")
                await self._gate.wait_idle()

            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        logger.info("Escalation scheduler stopped")

    async def trigger_now(self) -> SweepSummary:
        """
        Run a sweep immediately on operator request.

        Raises ConcurrentSweepRejectedException if a sweep is in flight.
        Store failures propagate to the caller.
        """
        logger.info("Manual escalation sweep triggered")
        try:
            return await self._run_guarded()
        except ConcurrentSweepRejectedException:
            logger.warning("Manual escalation sweep rejected: sweep already in progress")
            raise

    async def _run_guarded(self) -> SweepSummary:
        async with self._gate.hold():
            try:
                summary = await self._engine.run_sweep()
            except Exception as e:
                self.last_error = str(e)
                raise
            self.last_sweep_at = summary.finished_at
            self.last_summary = summary
            self.last_error = None
            return summary

    async def _tick(self) -> None:
        """Timer callback. Never raises; always schedules the next run."""
        try:
            await self._run_guarded()
        except ConcurrentSweepRejectedException:
            logger.info("Scheduled escalation sweep skipped: sweep already in progress")
        except ApplicationException as e:
            logger.error(
                "Scheduled escalation sweep failed",
                extra={"error_type": type(e).__name__, "error": e.message}
            )
        except Exception as e:
            logger.exception("Scheduled escalation sweep crashed", extra={"error": str(e)})
        finally:
            if self._started:
                self._schedule_next(self.interval_seconds)

    def _schedule_next(self, delay_seconds: float) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self._scheduler.add_job(
            self._tick,
            "date",
            run_date=run_date,
            id=self.JOB_ID,
            name="Escalation Sweep Job",
            misfire_grace_time=None,
            replace_existing=True,
        )

    def status(self) -> dict:
        return {
            "state": self.state,
            "interval_seconds": self.interval_seconds,
            "last_sweep_at": self.last_sweep_at,
            "next_run_at": self.next_run_at,
            "last_summary": self.last_summary,
            "last_error": self.last_error,
        }
