"""
Route profile value types.

A RouteProfile is the ordered sequence of points returned by the routing
provider, each stamped with cumulative distance (km) and elapsed driving
time (minutes). Profiles are immutable once built.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from common.exceptions import RouteValidationError
from common.validators import is_valid_coordinate


@dataclass(frozen=True)
class RoutePoint:
    """A single point of the route time/distance profile."""

    distance_from_start_km: float
    time_offset_minutes: float
    latitude: float
    longitude: float

    def to_dict(self) -> Dict:
        return {
            "distance_from_start_km": self.distance_from_start_km,
            "time_offset_minutes": self.time_offset_minutes,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass(frozen=True)
class RouteSegment:
    """Contiguous portion of a route between two consecutive points."""

    index: int
    start: RoutePoint
    end: RoutePoint

    @property
    def length_km(self) -> float:
        return self.end.distance_from_start_km - self.start.distance_from_start_km

    @property
    def duration_minutes(self) -> float:
        return self.end.time_offset_minutes - self.start.time_offset_minutes

    @property
    def midpoint(self) -> Tuple[float, float]:
        return (
            (self.start.latitude + self.end.latitude) / 2,
            (self.start.longitude + self.end.longitude) / 2,
        )

    @property
    def midpoint_time_offset_minutes(self) -> float:
        return (self.start.time_offset_minutes + self.end.time_offset_minutes) / 2


@dataclass(frozen=True)
class RouteProfile:
    """Ordered, validated sequence of RoutePoints."""

    points: Tuple[RoutePoint, ...] = ()

    @classmethod
    def from_points(cls, points: Iterable[RoutePoint]) -> "RouteProfile":
        """
        Build a profile, rejecting malformed data.

        Raises:
            RouteValidationError: If distance or time decreases, a value is
                negative, or a coordinate is out of range
        """
        points = tuple(points)
        previous: Optional[RoutePoint] = None

        for index, point in enumerate(points):
            if point.distance_from_start_km < 0 or point.time_offset_minutes < 0:
                raise RouteValidationError(
                    f"Point {index} has a negative distance or time offset",
                    field="points",
                )
            if not is_valid_coordinate(point.latitude, point.longitude):
                raise RouteValidationError(
                    f"Point {index} has invalid coordinates "
                    f"({point.latitude}, {point.longitude})",
                    field="points",
                )
            if previous is not None:
                if point.distance_from_start_km < previous.distance_from_start_km:
                    raise RouteValidationError(
                        f"Distance decreases at point {index}: "
                        f"{point.distance_from_start_km} < "
                        f"{previous.distance_from_start_km}",
                        field="points",
                    )
                if point.time_offset_minutes < previous.time_offset_minutes:
                    raise RouteValidationError(
                        f"Time offset decreases at point {index}: "
                        f"{point.time_offset_minutes} < "
                        f"{previous.time_offset_minutes}",
                        field="points",
                    )
            previous = point

        return cls(points=points)

    @classmethod
    def from_dicts(cls, rows: Iterable[Dict]) -> "RouteProfile":
        """Build a profile from plain dictionaries (API payloads)."""
        points = []
        for index, row in enumerate(rows):
            try:
                points.append(
                    RoutePoint(
                        distance_from_start_km=float(row["distance_from_start_km"]),
                        time_offset_minutes=float(row["time_offset_minutes"]),
                        latitude=float(row.get("latitude", 0.0)),
                        longitude=float(row.get("longitude", 0.0)),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise RouteValidationError(
                    f"Point {index} is malformed: {str(e)}", field="points"
                )
        return cls.from_points(points)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_empty(self) -> bool:
        return not self.points

    @property
    def total_distance_km(self) -> float:
        if not self.points:
            return 0.0
        return self.points[-1].distance_from_start_km - self.points[0].distance_from_start_km

    @property
    def total_duration_minutes(self) -> float:
        if not self.points:
            return 0.0
        return self.points[-1].time_offset_minutes - self.points[0].time_offset_minutes

    @property
    def average_speed_kmh(self) -> float:
        if self.total_duration_minutes <= 0:
            return 0.0
        return self.total_distance_km / (self.total_duration_minutes / 60)

    def segments(self) -> List[RouteSegment]:
        return [
            RouteSegment(index=i, start=self.points[i], end=self.points[i + 1])
            for i in range(len(self.points) - 1)
        ]

    def interpolate(self, time_offset_minutes: float) -> Optional[RoutePoint]:
        """
        Locate the point reached at a given driving-time offset.

        Speed is assumed constant between consecutive points.
        """
        if not self.points:
            return None
        if time_offset_minutes <= self.points[0].time_offset_minutes:
            return self.points[0]

        for segment in self.segments():
            if time_offset_minutes <= segment.end.time_offset_minutes:
                return interpolate_point(
                    segment.start,
                    segment.end,
                    time_offset_minutes - segment.start.time_offset_minutes,
                )
        return self.points[-1]


def interpolate_point(start: RoutePoint, end: RoutePoint, elapsed_minutes: float) -> RoutePoint:
    """Linear interpolation between two points by elapsed driving minutes."""
    duration = end.time_offset_minutes - start.time_offset_minutes
    fraction = elapsed_minutes / duration if duration > 0 else 1.0
    fraction = max(0.0, min(1.0, fraction))

    return RoutePoint(
        distance_from_start_km=start.distance_from_start_km
        + (end.distance_from_start_km - start.distance_from_start_km) * fraction,
        time_offset_minutes=start.time_offset_minutes + duration * fraction,
        latitude=start.latitude + (end.latitude - start.latitude) * fraction,
        longitude=start.longitude + (end.longitude - start.longitude) * fraction,
    )
