"""
Rest Stop Planner Service.

Resolves an abstract rest stop requirement ("a daily rest is needed near
km 720") into a concrete recommendation by querying a point-of-interest
collaborator around the requirement's coordinates.

Candidates are ranked by a composite score:
- proximity to the route point (40%)
- facility rating (20%)
- match with the facilities the rest type needs (40%)
- a small bonus for truck accessible locations or HGV parking

If no candidate is found, or the POI lookup fails, a synthetic
recommendation built from the route coordinates is returned instead.
Planning a rest stop never fails the overall analysis.

Single Responsibility: rest stop location resolution only.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence

from django.conf import settings

from common.deadline import AnalysisDeadline
from common.exceptions import ExternalCollaboratorUnavailable
from common.validators import calculate_distance_km, clamp, format_duration
from hos_compliance.rest_stops import (
    AmenityType,
    PointOfInterest,
    RestStopRecommendation,
    RestStopRequirement,
    RestType,
)

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_RADIUS_KM = 15.0
DIESEL = "diesel"

SHORT_BREAK_AMENITIES = (
    AmenityType.FUEL,
    AmenityType.REST_AREA,
    AmenityType.TRUCK_STOP,
    AmenityType.PARKING,
    AmenityType.CAFE,
)

AMENITIES_BY_REST_TYPE = {
    RestType.SHORT_BREAK: SHORT_BREAK_AMENITIES,
    RestType.DAILY_REST: SHORT_BREAK_AMENITIES + (AmenityType.HOTEL,),
    RestType.WEEKLY_REST: SHORT_BREAK_AMENITIES + (AmenityType.HOTEL,),
}

REQUIRED_FACILITIES = {
    RestType.SHORT_BREAK: frozenset({"parking", "toilets"}),
    RestType.DAILY_REST: frozenset({"parking", "toilets", "shower", "restaurant"}),
    RestType.WEEKLY_REST: frozenset({"parking", "toilets", "shower", "restaurant", "lodging"}),
}

PROXIMITY_WEIGHT = 0.4
RATING_WEIGHT = 0.2
FACILITY_WEIGHT = 0.4
TRUCK_BONUS = 0.1

# Rating used for candidates without one
NEUTRAL_RATING = 0.5
MAX_RATING = 5.0

POI_SKIPPED_NOTE = "POI lookup skipped: analysis deadline expired"
POI_UNAVAILABLE_NOTE = "POI lookup unavailable"
FUEL_SKIPPED_NOTE = "Fuel price lookup skipped: analysis deadline expired"
FUEL_UNAVAILABLE_NOTE = "Fuel price unavailable"
DEGRADED_NOTES = frozenset(
    {POI_SKIPPED_NOTE, POI_UNAVAILABLE_NOTE, FUEL_SKIPPED_NOTE, FUEL_UNAVAILABLE_NOTE}
)


class RestStopPlanner:
    """
    Turns rest stop requirements into recommendations.

    Args:
        poi_service: Collaborator exposing search_nearby(lat, lon, radius_km, amenity_types, deadline=None)
        fuel_service: Optional collaborator exposing get_fuel_price(lat, lon, fuel_type, deadline=None)
        search_radius_km: POI search radius; defaults to REST_STOP_SEARCH_RADIUS_KM
    """

    def __init__(self, poi_service=None, fuel_service=None, search_radius_km: Optional[float] = None):
        self.poi_service = poi_service
        self.fuel_service = fuel_service
        self.search_radius_km = float(
            search_radius_km
            if search_radius_km is not None
            else getattr(settings, "REST_STOP_SEARCH_RADIUS_KM", DEFAULT_SEARCH_RADIUS_KM)
        )
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def plan(
        self,
        requirements: Iterable[RestStopRequirement],
        deadline: Optional[AnalysisDeadline] = None,
    ) -> List[RestStopRecommendation]:
        """Resolve every requirement, preserving order."""
        return [self.resolve(requirement, deadline) for requirement in requirements]

    def resolve(
        self,
        requirement: RestStopRequirement,
        deadline: Optional[AnalysisDeadline] = None,
    ) -> RestStopRecommendation:
        """
        Resolve one requirement into a recommendation.

        Args:
            requirement: Rest required near a route position
            deadline: Optional analysis deadline; no lookups once expired

        Returns:
            The best scoring candidate, or a synthetic recommendation
        """
        deadline = deadline or AnalysisDeadline.unbounded()
        notes = []

        if requirement.latitude is None or requirement.longitude is None:
            return self._synthetic(requirement, ("No route coordinates for this stop",))

        candidates = self._search_candidates(requirement, deadline, notes)
        if not candidates:
            notes.append("No suitable location found within search radius")
            return self._synthetic(requirement, notes)

        best = max(
            candidates,
            key=lambda poi: (self.score_candidate(poi, requirement), -poi.osm_id),
        )
        score = self.score_candidate(best, requirement)
        distance = calculate_distance_km(
            requirement.latitude, requirement.longitude, best.latitude, best.longitude
        )

        missing = REQUIRED_FACILITIES[RestType(requirement.rest_type)] - best.facilities
        if missing:
            notes.append(f"Missing facilities: {', '.join(sorted(missing))}")

        fuel_price, fuel_currency = self._lookup_fuel_price(best.latitude, best.longitude, deadline, notes)

        self.logger.debug(
            f"Resolved {requirement.rest_type} at km {requirement.trigger_distance_km:.1f} "
            f"to {best.name or best.osm_id} (score {score:.2f})"
        )

        return RestStopRecommendation(
            requirement=requirement,
            latitude=best.latitude,
            longitude=best.longitude,
            location_name=best.name or "",
            amenity_type=best.amenity_type,
            distance_from_route_km=distance,
            facilities=best.facilities,
            score=score,
            fuel_price=fuel_price,
            fuel_currency=fuel_currency,
            parking_cost=self.parking_cost(best, requirement.minimum_duration_minutes),
            degraded=any(note in DEGRADED_NOTES for note in notes),
            notes=tuple(notes),
        )

    def resolve_synthetic(self, requirement: RestStopRequirement) -> RestStopRecommendation:
        """Recommendation from route coordinates only, without any lookup."""
        return self._synthetic(requirement, ())

    def score_candidate(self, poi: PointOfInterest, requirement: RestStopRequirement) -> float:
        """Composite score in [0, 1]."""
        distance = calculate_distance_km(
            requirement.latitude, requirement.longitude, poi.latitude, poi.longitude
        )
        proximity = clamp(1.0 - distance / self.search_radius_km, 0.0, 1.0)

        rating = NEUTRAL_RATING if poi.rating is None else clamp(poi.rating / MAX_RATING, 0.0, 1.0)

        required = REQUIRED_FACILITIES[RestType(requirement.rest_type)]
        facility_match = len(required & poi.facilities) / len(required)

        score = (
            PROXIMITY_WEIGHT * proximity
            + RATING_WEIGHT * rating
            + FACILITY_WEIGHT * facility_match
        )
        if poi.truck_accessible or poi.hgv_parking:
            score += TRUCK_BONUS

        return clamp(score, 0.0, 1.0)

    @staticmethod
    def parking_cost(poi: PointOfInterest, duration_minutes: int) -> Optional[Decimal]:
        """Fee per hour times the rest duration, None when the POI has no fee."""
        if poi.parking_fee_per_hour is None:
            return None
        hours = Decimal(duration_minutes) / Decimal(60)
        return (poi.parking_fee_per_hour * hours).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def amenity_types_for(self, rest_type: str) -> Sequence[str]:
        return AMENITIES_BY_REST_TYPE[RestType(rest_type)]

    def _search_candidates(
        self,
        requirement: RestStopRequirement,
        deadline: AnalysisDeadline,
        notes: List[str],
    ) -> List[PointOfInterest]:
        if self.poi_service is None:
            return []

        if deadline.expired:
            self.logger.warning("Analysis deadline expired, skipping POI lookup")
            notes.append(POI_SKIPPED_NOTE)
            return []

        try:
            found = self.poi_service.search_nearby(
                requirement.latitude,
                requirement.longitude,
                self.search_radius_km,
                self.amenity_types_for(requirement.rest_type),
                deadline=deadline,
            )
        except ExternalCollaboratorUnavailable as e:
            self.logger.warning(f"POI lookup failed, using synthetic stop: {str(e)}")
            notes.append(POI_UNAVAILABLE_NOTE)
            return []

        return [
            poi
            for poi in found
            if calculate_distance_km(
                requirement.latitude, requirement.longitude, poi.latitude, poi.longitude
            )
            <= self.search_radius_km
        ]

    def _lookup_fuel_price(self, latitude, longitude, deadline: AnalysisDeadline, notes: List[str]):
        if self.fuel_service is None:
            return None, None

        if deadline.expired:
            notes.append(FUEL_SKIPPED_NOTE)
            return None, None

        try:
            price = self.fuel_service.get_fuel_price(latitude, longitude, DIESEL, deadline=deadline)
        except ExternalCollaboratorUnavailable as e:
            self.logger.warning(f"Fuel price lookup failed: {str(e)}")
            notes.append(FUEL_UNAVAILABLE_NOTE)
            return None, None

        return price.price, price.currency

    def _synthetic(self, requirement: RestStopRequirement, notes) -> RestStopRecommendation:
        self.logger.info(
            f"Synthetic {requirement.rest_type} stop at km {requirement.trigger_distance_km:.1f} "
            f"({format_duration(requirement.minimum_duration_minutes)})"
        )
        return RestStopRecommendation(
            requirement=requirement,
            latitude=requirement.latitude,
            longitude=requirement.longitude,
            location_name="",
            synthetic=True,
            degraded=any(note in DEGRADED_NOTES for note in notes),
            notes=tuple(notes),
        )


def facility_summary(recommendations: Iterable[RestStopRecommendation]) -> Dict[str, int]:
    """Count recommendations per amenity type, synthetic stops under 'synthetic'."""
    summary: Dict[str, int] = {}
    for recommendation in recommendations:
        key = "synthetic" if recommendation.synthetic else str(recommendation.amenity_type)
        summary[key] = summary.get(key, 0) + 1
    return summary
