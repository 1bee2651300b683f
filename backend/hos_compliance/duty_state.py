"""
Duty state snapshots.

A DutyState is never mutated: each transition produces a new snapshot,
which keeps simulations replayable. Persisting a driver's state means
storing the latest snapshot.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict

from django.db import models


class DutyStatus(models.TextChoices):
    DRIVING = "DRIVING", "Driving"
    REST_BREAK = "REST_BREAK", "Short break"
    DAILY_REST = "DAILY_REST", "Daily rest"
    WEEKLY_REST = "WEEKLY_REST", "Weekly rest"
    OTHER_WORK = "OTHER_WORK", "Other work"
    AVAILABILITY = "AVAILABILITY", "Availability"
    OFF_DUTY = "OFF_DUTY", "Off duty"


REST_STATUSES = frozenset(
    {DutyStatus.REST_BREAK, DutyStatus.DAILY_REST, DutyStatus.WEEKLY_REST}
)


@dataclass(frozen=True)
class DutyState:
    """Immutable snapshot of a driver's duty status and legal accumulators."""

    status: str
    status_start_time: datetime
    continuous_driving_minutes: float = 0.0
    daily_driving_minutes: float = 0.0
    weekly_driving_minutes: float = 0.0
    two_week_driving_minutes: float = 0.0

    @classmethod
    def fresh(cls, at: datetime, status: str = DutyStatus.OFF_DUTY) -> "DutyState":
        """A fully rested driver."""
        return cls(status=DutyStatus(status), status_start_time=at)

    @property
    def accumulators(self) -> Dict[str, float]:
        return {
            "continuous": self.continuous_driving_minutes,
            "daily": self.daily_driving_minutes,
            "weekly": self.weekly_driving_minutes,
            "two_week": self.two_week_driving_minutes,
        }

    def evolve(self, **changes) -> "DutyState":
        return replace(self, **changes)

    def to_dict(self) -> Dict:
        return {
            "status": str(self.status),
            "status_start_time": self.status_start_time.isoformat(),
            "continuous_driving_minutes": round(self.continuous_driving_minutes, 2),
            "daily_driving_minutes": round(self.daily_driving_minutes, 2),
            "weekly_driving_minutes": round(self.weekly_driving_minutes, 2),
            "two_week_driving_minutes": round(self.two_week_driving_minutes, 2),
        }


@dataclass(frozen=True)
class DutyEvent:
    """The driver switched to `status` at `at`."""

    status: str
    at: datetime
