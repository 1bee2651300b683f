"""
Driving State Tracker.

Pure state machine over a driver's duty status and legal accumulators
(continuous, daily, weekly and two-week driving minutes).

The tracker is a function (DutyState, DutyEvent) -> DutyState: it holds
no state of its own besides the read-only regulatory policy, so any
sequence of events can be replayed and tested in isolation.

Closing rules per status live in an explicit transition table:
- DRIVING adds the elapsed minutes to every accumulator
- REST_BREAK / DAILY_REST / WEEKLY_REST grant rest credit bounded by status
- OTHER_WORK / AVAILABILITY / OFF_DUTY neither accumulate nor reset

Single Responsibility: duty status transitions only.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from common.exceptions import ComplianceViolation, RouteValidationError
from hos_compliance.duty_state import DutyEvent, DutyState, DutyStatus
from hos_compliance.policy import RestRegulationPolicy

logger = logging.getLogger(__name__)

# Tolerance for float comparisons on accumulated minutes
MINUTES_EPSILON = 1e-6

# Accumulators a qualifying rest of each status may reset
REST_CREDIT = {
    DutyStatus.REST_BREAK: ("continuous",),
    DutyStatus.DAILY_REST: ("continuous", "daily"),
    DutyStatus.WEEKLY_REST: ("continuous", "daily", "weekly"),
}

# Rest status required when a ceiling is exhausted, longest first
CEILING_REST_PRIORITY = (
    ("two_week", DutyStatus.WEEKLY_REST),
    ("weekly", DutyStatus.WEEKLY_REST),
    ("daily", DutyStatus.DAILY_REST),
    ("continuous", DutyStatus.REST_BREAK),
)


class DrivingStateTracker:
    """
    Transition function for driver duty states.

    Args:
        policy: Regulatory thresholds; defaults to the RTO_POLICY setting
    """

    def __init__(self, policy: Optional[RestRegulationPolicy] = None):
        self.policy = policy or RestRegulationPolicy.from_settings()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self._closing_rules: Dict[str, Callable[[DutyState, float], DutyState]] = {
            DutyStatus.DRIVING: self._close_driving,
            DutyStatus.REST_BREAK: self._close_rest,
            DutyStatus.DAILY_REST: self._close_rest,
            DutyStatus.WEEKLY_REST: self._close_rest,
            DutyStatus.OTHER_WORK: self._close_neutral,
            DutyStatus.AVAILABILITY: self._close_neutral,
            DutyStatus.OFF_DUTY: self._close_neutral,
        }

    def transition(self, state: DutyState, event: DutyEvent) -> DutyState:
        """
        Apply a duty status change.

        Args:
            state: Current snapshot
            event: New status and the moment it starts

        Returns:
            New snapshot whose status interval starts at event.at

        Raises:
            RouteValidationError: If the event predates the current status
                or names an unknown status
            ComplianceViolation: If DRIVING is requested with an exhausted
                ceiling and no qualifying rest has intervened
        """
        new_status = self._coerce_status(event.status)

        if event.at < state.status_start_time:
            raise RouteValidationError(
                f"Status change at {event.at.isoformat()} predates current status "
                f"start {state.status_start_time.isoformat()}",
                field="at",
            )

        if new_status == state.status:
            return state

        closed = self.project(state, event.at)

        if new_status == DutyStatus.DRIVING:
            exhausted = self.exhausted_ceilings(closed)
            if exhausted:
                self.logger.warning(
                    f"Driving refused at {event.at.isoformat()}: {', '.join(exhausted)} exhausted"
                )
                raise ComplianceViolation(closed, exhausted)

        self.logger.debug(f"Duty status {state.status} -> {new_status} at {event.at.isoformat()}")
        return closed.evolve(status=new_status, status_start_time=event.at)

    def apply(self, state: DutyState, events: Iterable[DutyEvent]) -> DutyState:
        """Replay a sequence of events from a starting snapshot."""
        for event in events:
            state = self.transition(state, event)
        return state

    def project(self, state: DutyState, at: datetime) -> DutyState:
        """
        Accumulators as if the current status interval closed at `at`.

        The returned snapshot keeps the original status and start time, so
        it describes a hypothetical and must not be fed back into transition.
        """
        elapsed = (at - state.status_start_time).total_seconds() / 60
        if elapsed < 0:
            raise RouteValidationError(
                f"Cannot project duty state backwards to {at.isoformat()}", field="at"
            )
        rule = self._closing_rules[self._coerce_status(state.status)]
        return rule(state, elapsed)

    def remaining_capacity(self, state: DutyState) -> Dict[str, float]:
        """Driving minutes left before each ceiling, never negative."""
        accumulators = state.accumulators
        return {
            name: max(0.0, ceiling - accumulators[name])
            for name, ceiling in self.policy.ceilings.items()
        }

    def remaining_driving_minutes(self, state: DutyState) -> float:
        return min(self.remaining_capacity(state).values())

    def exhausted_ceilings(self, state: DutyState) -> List[str]:
        return [
            name
            for name, remaining in self.remaining_capacity(state).items()
            if remaining <= MINUTES_EPSILON
        ]

    def can_drive(self, state: DutyState) -> bool:
        return not self.exhausted_ceilings(state)

    def required_rest_status(self, ceilings: Iterable[str]) -> str:
        """
        Rest status that resolves the given ceilings; the longest
        mandated rest wins when several are hit together.
        """
        ceilings = set(ceilings)
        for name, status in CEILING_REST_PRIORITY:
            if name in ceilings:
                return status
        raise ValueError(f"No rest rule for ceilings: {sorted(ceilings)}")

    def rest_minutes_for(self, status: str) -> int:
        """Minimum qualifying duration of a rest status."""
        return {
            DutyStatus.REST_BREAK: self.policy.short_break_minutes,
            DutyStatus.DAILY_REST: self.policy.daily_rest_minutes,
            DutyStatus.WEEKLY_REST: self.policy.weekly_rest_minutes,
        }[self._coerce_status(status)]

    # Closing rules

    def _close_driving(self, state: DutyState, elapsed: float) -> DutyState:
        return state.evolve(
            continuous_driving_minutes=state.continuous_driving_minutes + elapsed,
            daily_driving_minutes=state.daily_driving_minutes + elapsed,
            weekly_driving_minutes=state.weekly_driving_minutes + elapsed,
            two_week_driving_minutes=state.two_week_driving_minutes + elapsed,
        )

    def _close_rest(self, state: DutyState, elapsed: float) -> DutyState:
        credit = REST_CREDIT[self._coerce_status(state.status)]
        changes = {}

        if "continuous" in credit and elapsed + MINUTES_EPSILON >= self.policy.short_break_minutes:
            changes["continuous_driving_minutes"] = 0.0

        if "daily" in credit and elapsed + MINUTES_EPSILON >= self.policy.daily_rest_minutes:
            changes["continuous_driving_minutes"] = 0.0
            changes["daily_driving_minutes"] = 0.0

        if "weekly" in credit and elapsed + MINUTES_EPSILON >= self.policy.weekly_rest_minutes:
            # The week just closed becomes the first half of the two-week window
            changes["two_week_driving_minutes"] = state.weekly_driving_minutes
            if elapsed + MINUTES_EPSILON >= 2 * self.policy.weekly_rest_minutes:
                # Two full weekly rests clear the whole window
                changes["two_week_driving_minutes"] = 0.0
            changes["continuous_driving_minutes"] = 0.0
            changes["daily_driving_minutes"] = 0.0
            changes["weekly_driving_minutes"] = 0.0

        return state.evolve(**changes) if changes else state

    def _close_neutral(self, state: DutyState, elapsed: float) -> DutyState:
        return state

    @staticmethod
    def _coerce_status(status) -> str:
        try:
            return DutyStatus(status)
        except ValueError:
            raise RouteValidationError(f"Unknown duty status: {status}", field="status")


def next_state(
    state: DutyState, event: DutyEvent, policy: Optional[RestRegulationPolicy] = None
) -> DutyState:
    """Functional shortcut for a single transition."""
    return DrivingStateTracker(policy).transition(state, event)
