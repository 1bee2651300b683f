"""
Trip Time Simulator.

Walks a route's time/distance profile forward from departure, projecting
the driver's legal accumulators, and emits a rest stop requirement the
moment a ceiling would be crossed before the next route point.

The crossing point is back-computed by linear interpolation between the
two surrounding points (speed is assumed locally constant). When several
ceilings are hit at once the longest mandated rest wins
(weekly > daily > continuous). After each rest the walk resumes from the
same point until the route is exhausted.

Single Responsibility: rest requirement scheduling along a route.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from common.exceptions import ComplianceViolation, RouteValidationError
from hos_compliance.duty_state import DutyEvent, DutyState, DutyStatus
from hos_compliance.policy import RestRegulationPolicy
from hos_compliance.rest_stops import REST_TYPE_BY_STATUS, RestStopRequirement
from hos_compliance.services.driving_state_tracker import (
    MINUTES_EPSILON,
    DrivingStateTracker,
)
from routes.route_profile import RoutePoint, RouteProfile, interpolate_point

logger = logging.getLogger(__name__)

# Rest extensions tried before giving up on a ceiling
MAX_REST_ATTEMPTS = 3


@dataclass(frozen=True)
class SimulationResult:
    requirements: Tuple[RestStopRequirement, ...]
    compliant: bool
    compliant_with_rest_stops: bool
    final_state: DutyState
    departure_time: datetime
    arrival_time: datetime
    total_driving_minutes: float = 0.0
    total_rest_minutes: float = 0.0
    warnings: Tuple[Dict, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            "compliant": self.compliant,
            "compliant_with_rest_stops": self.compliant_with_rest_stops,
            "requirements": [requirement.to_dict() for requirement in self.requirements],
            "final_state": self.final_state.to_dict(),
            "departure_time": self.departure_time.isoformat(),
            "arrival_time": self.arrival_time.isoformat(),
            "total_driving_minutes": round(self.total_driving_minutes, 2),
            "total_rest_minutes": round(self.total_rest_minutes, 2),
            "warnings": list(self.warnings),
        }


class TripTimeSimulator:
    """
    Forward simulation of driving time along a route profile.

    Args:
        policy: Regulatory thresholds; defaults to the RTO_POLICY setting
        tracker: Optional pre-built state tracker sharing the same policy
    """

    def __init__(
        self,
        policy: Optional[RestRegulationPolicy] = None,
        tracker: Optional[DrivingStateTracker] = None,
    ):
        self.tracker = tracker or DrivingStateTracker(policy)
        self.policy = self.tracker.policy
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def simulate(
        self,
        profile: RouteProfile,
        initial_state: DutyState,
        departure_time: Optional[datetime] = None,
    ) -> SimulationResult:
        """
        Simulate the trip and schedule mandatory rests.

        Args:
            profile: Validated route profile, processed in distance order
            initial_state: Driver snapshot before departure
            departure_time: Departure moment (default: the state's status start)

        Returns:
            SimulationResult with ordered, non-overlapping requirements

        Raises:
            RouteValidationError: If departure predates the driver's state
        """
        departure = departure_time or initial_state.status_start_time
        if departure < initial_state.status_start_time:
            raise RouteValidationError(
                "Departure time predates the driver's current status start",
                field="departure_time",
            )

        if len(profile) < 2:
            self.logger.debug("Route has fewer than two points, nothing to simulate")
            return SimulationResult(
                requirements=(),
                compliant=True,
                compliant_with_rest_stops=True,
                final_state=initial_state,
                departure_time=departure,
                arrival_time=departure,
            )

        requirements: List[RestStopRequirement] = []
        warnings: List[Dict] = []
        clock = departure
        driving_total = 0.0
        rest_total = 0.0

        state, clock, pre_departure = self._depart(
            initial_state, clock, profile.points[0], warnings
        )
        if pre_departure is not None:
            requirements.append(pre_departure)
            rest_total += pre_departure.minimum_duration_minutes

        for start, end in zip(profile.points, profile.points[1:]):
            leg_minutes = end.time_offset_minutes - start.time_offset_minutes
            driven = 0.0

            while leg_minutes - driven > MINUTES_EPSILON:
                capacity = self.tracker.remaining_driving_minutes(
                    self.tracker.project(state, clock)
                )
                remaining = leg_minutes - driven

                if remaining <= capacity + MINUTES_EPSILON:
                    clock += timedelta(minutes=remaining)
                    driving_total += remaining
                    break

                # A ceiling is crossed before reaching `end`
                clock += timedelta(minutes=capacity)
                driven += capacity
                driving_total += capacity

                stop_point = interpolate_point(start, end, driven)
                ceilings = self.tracker.exhausted_ceilings(self.tracker.project(state, clock))
                arrival_at_stop = clock

                state, clock, rest_status, rest_minutes = self._take_rest(state, clock, ceilings)
                requirements.append(
                    self._build_requirement(
                        stop_point, rest_status, rest_minutes, ceilings, arrival_at_stop
                    )
                )
                rest_total += rest_minutes

        final_state = self.tracker.transition(state, DutyEvent(DutyStatus.AVAILABILITY, clock))
        within_limits = all(
            final_state.accumulators[name] <= ceiling + MINUTES_EPSILON
            for name, ceiling in self.policy.ceilings.items()
        )

        result = SimulationResult(
            requirements=tuple(requirements),
            compliant=not requirements,
            compliant_with_rest_stops=within_limits,
            final_state=final_state,
            departure_time=departure,
            arrival_time=clock,
            total_driving_minutes=driving_total,
            total_rest_minutes=rest_total,
            warnings=tuple(warnings),
        )

        self.logger.info(
            f"Simulated {profile.total_distance_km:.1f} km route: "
            f"{len(requirements)} rest stops, compliant={result.compliant}"
        )
        return result

    def _depart(
        self,
        state: DutyState,
        clock: datetime,
        origin: RoutePoint,
        warnings: List[Dict],
    ) -> Tuple[DutyState, datetime, Optional[RestStopRequirement]]:
        """Start driving at departure, resting first if no capacity is left."""
        try:
            driving = self.tracker.transition(state, DutyEvent(DutyStatus.DRIVING, clock))
            projected = self.tracker.project(driving, clock)
            exhausted = self.tracker.exhausted_ceilings(projected)
            if exhausted:
                raise ComplianceViolation(projected, exhausted)
            return driving, clock, None

        except ComplianceViolation as violation:
            self.logger.warning(f"No driving capacity at departure: {violation}")
            warnings.append(violation.to_warning())

            state, resumed, rest_status, rest_minutes = self._take_rest(
                state, clock, violation.ceilings
            )
            requirement = self._build_requirement(
                origin, rest_status, rest_minutes, violation.ceilings, clock, before_departure=True
            )
            return state, resumed, requirement

    def _take_rest(
        self, state: DutyState, clock: datetime, ceilings
    ) -> Tuple[DutyState, datetime, str, int]:
        """
        Rest until driving is legal again.

        A rest of the required status already under way counts toward the
        minimum, so only the time still missing is added after `clock`.

        Returns:
            Tuple of (driving state after rest, resume time, rest status,
            rest minutes spent after `clock`)
        """
        rest_status = self.tracker.required_rest_status(ceilings)
        rest_start = clock
        step = timedelta(minutes=self.tracker.rest_minutes_for(rest_status))
        resting = self.tracker.transition(state, DutyEvent(rest_status, clock))

        resume = clock + step
        if state.status == rest_status:
            resume = max(clock, state.status_start_time + step)

        for attempt in range(1, MAX_REST_ATTEMPTS + 1):
            try:
                resumed = self.tracker.transition(resting, DutyEvent(DutyStatus.DRIVING, resume))
            except ComplianceViolation as violation:
                if attempt == MAX_REST_ATTEMPTS:
                    raise
                self.logger.debug(
                    f"Rest of {rest_status} insufficient for {violation.ceilings}, extending"
                )
                resume += step
                continue

            rest_minutes = int(round((resume - rest_start).total_seconds() / 60))
            return resumed, resume, rest_status, rest_minutes

    def _build_requirement(
        self,
        point: RoutePoint,
        rest_status: str,
        rest_minutes: int,
        ceilings,
        arrival: datetime,
        before_departure: bool = False,
    ) -> RestStopRequirement:
        return RestStopRequirement(
            trigger_distance_km=point.distance_from_start_km,
            trigger_time_offset_minutes=point.time_offset_minutes,
            minimum_duration_minutes=rest_minutes,
            rest_type=REST_TYPE_BY_STATUS[rest_status],
            reason=self._describe_ceilings(ceilings),
            latitude=point.latitude,
            longitude=point.longitude,
            expected_arrival_time=arrival,
            before_departure=before_departure,
        )

    def _describe_ceilings(self, ceilings) -> str:
        labels = {
            "continuous": "Continuous driving",
            "daily": "Daily driving",
            "weekly": "Weekly driving",
            "two_week": "Two-week driving",
        }
        limits = self.policy.ceilings
        return "; ".join(
            f"{labels[name]} limit of {limits[name]} min reached" for name in ceilings
        )
