"""
Route Analysis Service.

Coordinates hazard lookups, risk aggregation, trip simulation and rest
stop planning into one compliance report:

    request -> hazards (given or fetched) -> RiskAggregator
            -> TripTimeSimulator -> RestStopPlanner -> ComplianceReport

The trip simulation is deterministic and always runs to completion.
External lookups are best effort: a failed, timed out or skipped lookup
degrades the report (zero risk contribution, synthetic rest stop) but
never aborts it. Only malformed input is fatal.

Independent analyses can run concurrently through analyze_many(); the
services share nothing mutable beyond read-only configuration.

Single Responsibility: Route analysis orchestration
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from django.conf import settings

from common.deadline import AnalysisDeadline
from common.exceptions import (
    ExternalCollaboratorUnavailable,
    RouteAnalysisFailed,
    RouteValidationError,
)
from common.validators import format_duration
from hos_compliance.duty_state import DutyState
from hos_compliance.policy import RestRegulationPolicy
from hos_compliance.rest_stops import RestStopRecommendation, RestType
from hos_compliance.services.rest_stop_planner import RestStopPlanner, facility_summary
from hos_compliance.services.trip_time_simulator import SimulationResult, TripTimeSimulator
from risk_analysis.hazards import (
    HazardObservation,
    HazardSeverity,
    HazardWarning,
    RiskLevel,
    RouteRisk,
    SegmentRisk,
    VehicleProfile,
)
from risk_analysis.services.risk_aggregator import RiskAggregator, RiskFactorWeights
from routes.route_profile import RouteProfile, RouteSegment

from .fuel_price_service import FuelPriceService
from .overpass_service import OverpassService
from .road_conditions_service import RoadConditionsService
from .weather_service import WeatherService

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class RouteAnalysisRequest:
    """
    Input of one route analysis.

    Attributes:
        profile: Route time/distance profile
        driver_state: Driver's duty state before departure
        departure_time: Departure moment (default: the state's status start)
        segment_hazards: Known hazards per segment, index aligned; missing
            entries or fields are fetched from collaborators when allowed
        cargo_flags: Cargo characteristics applied to every segment
        vehicle: Optional vehicle dimensions for wind and surface exposure
        fetch_hazards: Whether collaborators may be queried for hazards
        resolve_rest_stops: Whether rest stops are resolved to locations
        reference: Caller supplied identifier echoed in the report
    """

    profile: RouteProfile
    driver_state: DutyState
    departure_time: Optional[datetime] = None
    segment_hazards: Tuple[HazardObservation, ...] = ()
    cargo_flags: FrozenSet[str] = frozenset()
    vehicle: Optional[VehicleProfile] = None
    fetch_hazards: bool = True
    resolve_rest_stops: bool = True
    reference: Optional[str] = None


@dataclass(frozen=True)
class ComplianceReport:
    compliant: bool
    compliant_with_rest_stops: bool
    rest_stops: Tuple[RestStopRecommendation, ...]
    route_risk: RouteRisk
    segment_risks: Tuple[SegmentRisk, ...]
    warnings: Tuple[Dict, ...]
    summary: str
    degraded: bool
    departure_time: datetime
    arrival_time: datetime
    total_distance_km: float = 0.0
    total_driving_minutes: float = 0.0
    total_rest_minutes: float = 0.0
    final_state: Optional[DutyState] = None
    reference: Optional[str] = None
    hazard_warnings: Tuple[HazardWarning, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "reference": self.reference,
            "compliant": self.compliant,
            "compliant_with_rest_stops": self.compliant_with_rest_stops,
            "rest_stops": [stop.to_dict() for stop in self.rest_stops],
            "route_risk": self.route_risk.to_dict(),
            "segment_risks": [segment.to_dict() for segment in self.segment_risks],
            "hazard_warnings": [warning.to_dict() for warning in self.hazard_warnings],
            "warnings": list(self.warnings),
            "summary": self.summary,
            "degraded": self.degraded,
            "departure_time": self.departure_time.isoformat(),
            "arrival_time": self.arrival_time.isoformat(),
            "total_distance_km": round(self.total_distance_km, 3),
            "total_driving_minutes": round(self.total_driving_minutes, 2),
            "total_rest_minutes": round(self.total_rest_minutes, 2),
            "final_state": self.final_state.to_dict() if self.final_state else None,
        }


class RouteAnalysisService:
    """
    High-level service producing compliance and risk reports for routes.

    Every collaborator is injectable; by default the HTTP adapters of this
    package are used.
    """

    def __init__(
        self,
        policy: Optional[RestRegulationPolicy] = None,
        weights: Optional[RiskFactorWeights] = None,
        weather_service=None,
        road_conditions_service=None,
        poi_service=None,
        fuel_service=None,
        simulator: Optional[TripTimeSimulator] = None,
        aggregator: Optional[RiskAggregator] = None,
        planner: Optional[RestStopPlanner] = None,
    ):
        """Initialize the analysis pipeline with its services."""
        self.weather_service = weather_service or WeatherService()
        self.road_conditions_service = road_conditions_service or RoadConditionsService()
        self.planner = planner or RestStopPlanner(
            poi_service=poi_service or OverpassService(),
            fuel_service=fuel_service or FuelPriceService(),
        )
        self.simulator = simulator or TripTimeSimulator(policy)
        self.aggregator = aggregator or RiskAggregator(weights)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def analyze(
        self,
        request: RouteAnalysisRequest,
        deadline: Optional[AnalysisDeadline] = None,
    ) -> ComplianceReport:
        """
        Analyze one route for driver compliance and hazard risk.

        Args:
            request: Route, driver state and known hazards
            deadline: Optional budget; once expired no new lookups start

        Returns:
            ComplianceReport, marked degraded when lookups were missing

        Raises:
            RouteValidationError: If the route is empty or malformed
        """
        deadline = deadline or AnalysisDeadline.unbounded()
        profile = request.profile

        if profile.is_empty:
            raise RouteValidationError("Route profile has no points", field="points")

        self.logger.info(
            f"Analyzing route {request.reference or ''} with {len(profile)} points, "
            f"{profile.total_distance_km:.1f} km"
        )

        # Step 1: Deterministic simulation
        simulation = self.simulator.simulate(profile, request.driver_state, request.departure_time)

        # Step 2: Hazards and risk per segment
        warnings: List[Dict] = list(simulation.warnings)
        unavailable: Dict[str, str] = {}
        segment_risks = []
        hazard_warnings: List[HazardWarning] = []
        carried = set(request.cargo_flags)
        for segment in profile.segments():
            observation = self._segment_hazards(request, segment, simulation, deadline, unavailable)
            carried.update(observation.cargo_flags)
            segment_risks.append(
                self.aggregator.assess_segment(
                    observation,
                    segment_index=segment.index,
                    start_km=segment.start.distance_from_start_km,
                    end_km=segment.end.distance_from_start_km,
                    vehicle=request.vehicle,
                )
            )
            # Warnings sit where the driver is halfway through the segment
            location = profile.interpolate(segment.midpoint_time_offset_minutes)
            hazard_warnings.extend(
                self.aggregator.hazard_warnings(
                    observation,
                    distance_from_start_km=location.distance_from_start_km,
                    expected_time=passage_time(simulation, location.time_offset_minutes),
                    segment_index=segment.index,
                    vehicle=request.vehicle,
                )
            )
        route_risk = self.aggregator.assess_route(segment_risks, cargo_flags=carried)

        # Step 3: Rest stop locations
        if request.resolve_rest_stops:
            rest_stops = self.planner.plan(simulation.requirements, deadline)
        else:
            rest_stops = [
                self.planner.resolve_synthetic(requirement) for requirement in simulation.requirements
            ]

        for service, message in sorted(unavailable.items()):
            warnings.append(
                {"type": "collaborator_unavailable", "service": service, "description": message}
            )
        if deadline.expired:
            warnings.append(
                {
                    "type": "deadline_expired",
                    "description": "Analysis time budget ran out; external lookups were skipped",
                }
            )

        degraded = bool(unavailable) or deadline.expired or any(stop.degraded for stop in rest_stops)
        if degraded:
            self.logger.warning(f"Route analysis {request.reference or ''} degraded: {sorted(unavailable)}")

        report = ComplianceReport(
            compliant=simulation.compliant,
            compliant_with_rest_stops=simulation.compliant_with_rest_stops,
            rest_stops=tuple(rest_stops),
            route_risk=route_risk,
            segment_risks=tuple(segment_risks),
            warnings=tuple(warnings),
            summary=build_summary(profile, simulation, route_risk, rest_stops, degraded, hazard_warnings),
            degraded=degraded,
            departure_time=simulation.departure_time,
            arrival_time=simulation.arrival_time,
            total_distance_km=profile.total_distance_km,
            total_driving_minutes=simulation.total_driving_minutes,
            total_rest_minutes=simulation.total_rest_minutes,
            final_state=simulation.final_state,
            reference=request.reference,
            hazard_warnings=tuple(hazard_warnings),
        )

        self.logger.info(
            f"Route analysis complete: compliant={report.compliant}, "
            f"rest_stops={len(report.rest_stops)}, risk={route_risk.overall.score}"
        )
        return report

    def analyze_many(
        self,
        requests: Sequence[RouteAnalysisRequest],
        max_workers: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> List[Union[ComplianceReport, RouteValidationError, RouteAnalysisFailed]]:
        """
        Analyze independent routes concurrently.

        Each analysis gets its own budget, started when a worker picks the
        request up, so requests waiting in the queue keep their full budget.
        Once a budget runs out no new lookup starts and calls already in
        flight time out with it; the simulation still completes.

        Args:
            requests: Routes to analyze
            max_workers: Thread pool size (default: ANALYSIS_MAX_WORKERS)
            timeout_seconds: Budget per analysis in seconds

        Returns:
            One entry per request, in input order: the report, the
            RouteValidationError raised for a malformed request, or a
            RouteAnalysisFailed for any other error
        """
        if not requests:
            return []

        max_workers = max_workers or getattr(settings, "ANALYSIS_MAX_WORKERS", DEFAULT_MAX_WORKERS)

        self.logger.info(f"Analyzing {len(requests)} routes on {max_workers} workers")

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="route-analysis") as executor:
            futures = [
                executor.submit(self._analyze_within, request, timeout_seconds)
                for request in requests
            ]

            results = []
            for index, future in enumerate(futures):
                try:
                    results.append(future.result())
                except RouteValidationError as e:
                    self.logger.warning(f"Route {index} rejected: {str(e)}")
                    results.append(e)
                except Exception as e:
                    self.logger.error(f"Route {index} analysis failed: {str(e)}", exc_info=True)
                    results.append(RouteAnalysisFailed(str(e), reference=requests[index].reference))

        return results

    def _analyze_within(
        self, request: RouteAnalysisRequest, timeout_seconds: Optional[float]
    ) -> ComplianceReport:
        return self.analyze(request, AnalysisDeadline(timeout_seconds))

    def _segment_hazards(
        self,
        request: RouteAnalysisRequest,
        segment: RouteSegment,
        simulation: SimulationResult,
        deadline: AnalysisDeadline,
        unavailable: Dict[str, str],
    ) -> HazardObservation:
        """Known hazards of a segment, completed by collaborator lookups."""
        observation = HazardObservation()
        if segment.index < len(request.segment_hazards):
            observation = request.segment_hazards[segment.index] or observation
        if request.cargo_flags:
            observation = observation.merged_with(HazardObservation(cargo_flags=frozenset(request.cargo_flags)))

        if not request.fetch_hazards:
            return observation

        needs_weather = not observation.has_weather
        needs_road = observation.road_quality is None or observation.traffic_level is None
        if request.vehicle is not None and request.vehicle.heavy and observation.road_surface is None:
            needs_road = True
        if not (needs_weather or needs_road):
            return observation

        if deadline.expired:
            return observation

        lat, lon = segment.midpoint
        passage = passage_time(simulation, segment.midpoint_time_offset_minutes)

        if needs_weather and self.weather_service is not None:
            try:
                observation = observation.merged_with(
                    self.weather_service.get_observation(lat, lon, passage, deadline=deadline)
                )
            except ExternalCollaboratorUnavailable as e:
                self.logger.warning(f"Weather unavailable for segment {segment.index}: {str(e)}")
                unavailable.setdefault(e.service, str(e))

        if needs_road and self.road_conditions_service is not None and not deadline.expired:
            try:
                conditions = self.road_conditions_service.get_conditions(lat, lon, passage, deadline=deadline)
            except ExternalCollaboratorUnavailable as e:
                self.logger.warning(f"Road conditions unavailable for segment {segment.index}: {str(e)}")
                unavailable.setdefault(e.service, str(e))
            else:
                observation = observation.merged_with(conditions)

        return observation


def passage_time(simulation: SimulationResult, time_offset_minutes: float) -> datetime:
    """
    Wall-clock time at which the driver reaches a route time offset,
    counting the rests scheduled before it.
    """
    rest_before = sum(
        requirement.minimum_duration_minutes
        for requirement in simulation.requirements
        if requirement.trigger_time_offset_minutes <= time_offset_minutes
    )
    return simulation.departure_time + timedelta(minutes=time_offset_minutes + rest_before)


def build_summary(
    profile: RouteProfile,
    simulation: SimulationResult,
    route_risk: RouteRisk,
    rest_stops: Sequence[RestStopRecommendation],
    degraded: bool,
    hazard_warnings: Sequence[HazardWarning] = (),
) -> str:
    """Plain-language summary of a compliance report."""
    parts = [
        f"Route of {profile.total_distance_km:.1f} km with "
        f"{format_duration(simulation.total_driving_minutes)} of driving."
    ]

    if simulation.compliant:
        parts.append("The trip can be driven within the legal limits without extra rest.")
    else:
        counts = {}
        for requirement in simulation.requirements:
            counts[requirement.rest_type] = counts.get(requirement.rest_type, 0) + 1
        described = ", ".join(
            f"{count} {RestType(rest_type).label.lower()}{'s' if count > 1 else ''}"
            for rest_type, count in counts.items()
        )
        parts.append(
            f"{len(simulation.requirements)} mandatory rest stop"
            f"{'s' if len(simulation.requirements) > 1 else ''} required ({described}), "
            f"adding {format_duration(simulation.total_rest_minutes)}."
        )
        if any(requirement.before_departure for requirement in simulation.requirements):
            parts.append("The driver must rest before departure.")

    named = sum(1 for stop in rest_stops if not stop.synthetic)
    if rest_stops:
        parts.append(f"{named} of {len(rest_stops)} rest stops matched to a real location.")
        kinds = facility_summary(rest_stops)
        if kinds:
            parts.append(
                "Stop types: " + ", ".join(f"{kind} {count}" for kind, count in sorted(kinds.items())) + "."
            )

    overall = route_risk.overall
    parts.append(f"Overall risk {RiskLevel(overall.level).label.lower()} ({overall.score}/100).")
    if overall.level in (RiskLevel.HIGH, RiskLevel.SEVERE) and route_risk.peak_segment_index is not None:
        parts.append(f"Take extra care on segment #{route_risk.peak_segment_index}.")
    if hazard_warnings:
        serious = sum(
            1 for warning in hazard_warnings if warning.severity in (HazardSeverity.HIGH, HazardSeverity.SEVERE)
        )
        parts.append(
            f"{len(hazard_warnings)} weather hazard warning{'s' if len(hazard_warnings) > 1 else ''} "
            f"along the route, {serious} high or severe."
        )

    parts.append(f"Expected arrival {simulation.arrival_time.strftime('%Y-%m-%d %H:%M')}.")

    if not simulation.compliant_with_rest_stops:
        parts.append("Warning: the driver cannot stay within the legal limits on this route.")
    if degraded:
        parts.append("Some external data was unavailable; risk and rest stop details are partial.")

    return " ".join(parts)
