"""
Rest stop value types.

RestStopRequirement is what the trip simulator emits ("rest of this type
is needed near distance X"); RestStopRecommendation is the terminal,
location-resolved answer produced by the rest stop planner.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from django.db import models

from hos_compliance.duty_state import DutyStatus


class RestType(models.TextChoices):
    SHORT_BREAK = "SHORT_BREAK", "Short break"
    DAILY_REST = "DAILY_REST", "Daily rest"
    WEEKLY_REST = "WEEKLY_REST", "Weekly rest"


REST_TYPE_BY_STATUS = {
    DutyStatus.REST_BREAK: RestType.SHORT_BREAK,
    DutyStatus.DAILY_REST: RestType.DAILY_REST,
    DutyStatus.WEEKLY_REST: RestType.WEEKLY_REST,
}

STATUS_BY_REST_TYPE = {rest_type: status for status, rest_type in REST_TYPE_BY_STATUS.items()}


class AmenityType(models.TextChoices):
    """Types of amenities a rest stop can be resolved to."""

    FUEL = "fuel", "Fuel Station"
    TRUCK_STOP = "truck_stop", "Truck Stop"
    REST_AREA = "rest_area", "Rest Area"
    PARKING = "parking", "Parking"
    HOTEL = "hotel", "Hotel"
    RESTAURANT = "restaurant", "Restaurant"
    CAFE = "cafe", "Cafe"
    TOILETS = "toilets", "Toilets"


@dataclass(frozen=True)
class RestStopRequirement:
    trigger_distance_km: float
    trigger_time_offset_minutes: float
    minimum_duration_minutes: int
    rest_type: str
    reason: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    expected_arrival_time: Optional[datetime] = None
    before_departure: bool = False

    def to_dict(self) -> Dict:
        return {
            "trigger_distance_km": round(self.trigger_distance_km, 3),
            "trigger_time_offset_minutes": round(self.trigger_time_offset_minutes, 2),
            "minimum_duration_minutes": self.minimum_duration_minutes,
            "rest_type": str(self.rest_type),
            "reason": self.reason,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "expected_arrival_time": (
                self.expected_arrival_time.isoformat() if self.expected_arrival_time else None
            ),
            "before_departure": self.before_departure,
        }


@dataclass(frozen=True)
class PointOfInterest:
    """A candidate location returned by the POI collaborator."""

    osm_id: int
    latitude: float
    longitude: float
    amenity_type: str
    name: Optional[str] = None
    facilities: FrozenSet[str] = frozenset()
    rating: Optional[float] = None
    truck_accessible: bool = False
    hgv_parking: bool = False
    parking_fee_per_hour: Optional[Decimal] = None


@dataclass(frozen=True)
class FuelPrice:
    fuel_type: str
    price: Decimal
    currency: str
    station_name: Optional[str] = None


@dataclass(frozen=True)
class RestStopRecommendation:
    requirement: RestStopRequirement
    latitude: Optional[float]
    longitude: Optional[float]
    location_name: str = ""
    amenity_type: Optional[str] = None
    distance_from_route_km: float = 0.0
    facilities: FrozenSet[str] = frozenset()
    score: float = 0.0
    fuel_price: Optional[Decimal] = None
    fuel_currency: Optional[str] = None
    parking_cost: Optional[Decimal] = None
    synthetic: bool = False
    # A lookup failed or was skipped while resolving this stop
    degraded: bool = False
    notes: tuple = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            **self.requirement.to_dict(),
            "location_name": self.location_name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "amenity_type": str(self.amenity_type) if self.amenity_type else None,
            "distance_from_route_km": round(self.distance_from_route_km, 3),
            "facilities": sorted(self.facilities),
            "score": round(self.score, 3),
            "fuel_price": str(self.fuel_price) if self.fuel_price is not None else None,
            "fuel_currency": self.fuel_currency,
            "parking_cost": str(self.parking_cost) if self.parking_cost is not None else None,
            "synthetic": self.synthetic,
            "degraded": self.degraded,
            "notes": list(self.notes),
        }
