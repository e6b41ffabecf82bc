"""
Escalation Value Objects
========================

Immutable value objects and pure calculations for the escalation domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.config import Priority, Urgency, NotificationTier, VALID_PRIORITIES


class SLAPolicy(BaseModel):
    """
    Response-time thresholds in hours, keyed by priority.

    Loaded once at startup and never mutated afterwards.
    """
    model_config = ConfigDict(frozen=True)

    thresholds: Dict[str, int] = Field(
        default_factory=lambda: {Priority.HIGH: 24, Priority.MEDIUM: 48, Priority.LOW: 72},
        description="SLA threshold in hours by priority"
    )

    @field_validator("thresholds")
    @classmethod
    def validate_thresholds(cls, v: Dict[str, int]) -> Dict[str, int]:
        """Every known priority needs a positive threshold."""
        missing = [p for p in VALID_PRIORITIES if p not in v]
        if missing:
            raise ValueError(f"missing SLA thresholds for priorities: {missing}")
        for priority, hours in v.items():
            if hours <= 0:
                raise ValueError(f"SLA threshold for '{priority}' must be positive")
        return v

    def threshold_hours(self, priority: Optional[str]) -> int:
        """
        Look up the threshold for a priority.

        Unknown priorities get the shortest configured threshold so that a
        malformed complaint breaches early rather than never.
        """
        if priority in self.thresholds:
            return self.thresholds[priority]
        return min(self.thresholds.values())


@dataclass(frozen=True)
class BreachVerdict:
    """Outcome of evaluating one complaint against the SLA policy."""
    breached: bool
    hours_elapsed: int
    hours_overdue: int
    sla_limit: int

    def to_dict(self) -> dict:
        return {
            "breached": self.breached,
            "hours_elapsed": self.hours_elapsed,
            "hours_overdue": self.hours_overdue,
            "sla_limit": self.sla_limit,
        }


class BreachEvaluator:
    """
    Pure functions for breach calculations.

    Stateless: the same (created_at, priority, now) always yields the
    same verdict.
    """

    def __init__(self, policy: SLAPolicy):
        self._policy = policy

    @property
    def policy(self) -> SLAPolicy:
        return self._policy

    @staticmethod
    def hours_between(start: datetime, end: datetime) -> int:
        """Whole hours from start to end, floored."""
        return math.floor((end - start).total_seconds() / 3600)

    def evaluate(self, created_at: datetime, priority: Optional[str], now: datetime) -> BreachVerdict:
        sla_limit = self._policy.threshold_hours(priority)
        hours_elapsed = self.hours_between(created_at, now)
        return BreachVerdict(
            breached=hours_elapsed > sla_limit,
            hours_elapsed=hours_elapsed,
            hours_overdue=max(0, hours_elapsed - sla_limit),
            sla_limit=sla_limit,
        )


class EscalationPolicy(BaseModel):
    """
    Escalation rules applied on top of a breach verdict.

    cooldown_hours: minimum gap between automatic escalations.
    superadmin_level: level from which the superadmin tier is addressed.
    critical_level: level from which urgency is critical.
    """
    model_config = ConfigDict(frozen=True)

    cooldown_hours: float = Field(default=24.0, ge=0)
    superadmin_level: int = Field(default=2, ge=1)
    critical_level: int = Field(default=3, ge=1)

    @model_validator(mode="after")
    def validate_levels(self) -> "EscalationPolicy":
        if self.critical_level < self.superadmin_level:
            raise ValueError("critical_level cannot be below superadmin_level")
        return self

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.cooldown_hours)

    def cooldown_elapsed(self, last_escalated_at: Optional[datetime], now: datetime) -> bool:
        """True when a complaint may be escalated automatically again."""
        if last_escalated_at is None:
            return True
        return now - last_escalated_at >= self.cooldown

    def urgency_for(self, level: int) -> str:
        if level >= self.critical_level:
            return Urgency.CRITICAL
        if level >= self.superadmin_level:
            return Urgency.HIGH
        return Urgency.MODERATE

    def tiers_for(self, level: int) -> List[str]:
        tiers = [NotificationTier.ADMIN]
        if level >= self.superadmin_level:
            tiers.append(NotificationTier.SUPERADMIN)
        return tiers


def breach_reason(hours_overdue: int, priority: str) -> str:
    """History reason recorded for an automatic escalation."""
    return f"SLA breach: {hours_overdue}h overdue ({priority} priority)"


def manual_reason(operator: str, note: Optional[str] = None) -> str:
    """History reason recorded for an operator escalation."""
    reason = f"Manual escalation by {operator}"
    if note:
        reason += f": {note}"
    return reason
