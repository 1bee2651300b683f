"""
Hazard and risk value types.

HazardObservation bundles what the external collaborators report for a
point or segment, VehicleProfile the truck dimensions that change how
exposed it is. RiskScore, SegmentRisk and RouteRisk are derived values
and are never treated as a source of truth.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from django.db import models


class RiskLevel(models.TextChoices):
    LOW = "LOW", "Low"
    MODERATE = "MODERATE", "Moderate"
    HIGH = "HIGH", "High"
    SEVERE = "SEVERE", "Severe"


class RoadQuality(models.TextChoices):
    EXCELLENT = "EXCELLENT", "Excellent"
    GOOD = "GOOD", "Good"
    FAIR = "FAIR", "Fair"
    POOR = "POOR", "Poor"
    VERY_POOR = "VERY_POOR", "Very poor"


class TrafficLevel(models.TextChoices):
    LOW = "LOW", "Low"
    MODERATE = "MODERATE", "Moderate"
    HIGH = "HIGH", "High"
    SEVERE = "SEVERE", "Severe"


class RoadSurface(models.TextChoices):
    PAVED = "PAVED", "Paved"
    GRAVEL = "GRAVEL", "Gravel"
    UNPAVED = "UNPAVED", "Unpaved"


class CargoFlag(models.TextChoices):
    DANGEROUS = "DANGEROUS", "Dangerous goods"
    OVERSIZED = "OVERSIZED", "Oversized load"
    TEMPERATURE_SENSITIVE = "TEMPERATURE_SENSITIVE", "Temperature controlled"
    FRAGILE = "FRAGILE", "Fragile"


class WeatherHazardType(models.TextChoices):
    STRONG_WIND = "STRONG_WIND", "Strong wind"
    ICE_RISK = "ICE_RISK", "Ice risk"
    LOW_VISIBILITY = "LOW_VISIBILITY", "Low visibility"
    HEAVY_RAIN = "HEAVY_RAIN", "Heavy rain"
    SNOW = "SNOW", "Snowfall"
    THUNDERSTORM = "THUNDERSTORM", "Thunderstorm"
    EXTREME_COLD = "EXTREME_COLD", "Extreme cold"
    EXTREME_HEAT = "EXTREME_HEAT", "Extreme heat"


class HazardSeverity(models.TextChoices):
    LOW = "LOW", "Low"
    MODERATE = "MODERATE", "Moderate"
    HIGH = "HIGH", "High"
    SEVERE = "SEVERE", "Severe"


@dataclass(frozen=True)
class HazardObservation:
    """
    Raw hazard signals for one point or segment.

    Every field is optional: a missing value contributes no risk.
    """

    temperature_c: Optional[float] = None
    rain_mm_per_hour: Optional[float] = None
    snow_mm_per_hour: Optional[float] = None
    wind_speed_ms: Optional[float] = None
    visibility_m: Optional[float] = None
    road_quality: Optional[str] = None
    traffic_level: Optional[str] = None
    cargo_flags: FrozenSet[str] = frozenset()
    condition: Optional[str] = None
    road_surface: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "HazardObservation":
        """Build an observation from a loosely-typed payload."""

        def number(key):
            value = data.get(key)
            if value is None or value == "":
                return None
            try:
                return float(value)
            except (TypeError, ValueError):
                return None

        def upper(key):
            value = data.get(key)
            return str(value).upper() if value else None

        return cls(
            temperature_c=number("temperature_c"),
            rain_mm_per_hour=number("rain_mm_per_hour"),
            snow_mm_per_hour=number("snow_mm_per_hour"),
            wind_speed_ms=number("wind_speed_ms"),
            visibility_m=number("visibility_m"),
            road_quality=upper("road_quality"),
            traffic_level=upper("traffic_level"),
            cargo_flags=frozenset(str(f).upper() for f in data.get("cargo_flags") or ()),
            condition=upper("condition"),
            road_surface=upper("road_surface"),
        )

    def merged_with(self, other: "HazardObservation") -> "HazardObservation":
        """Fill this observation's missing fields from another one."""

        def pick(name):
            own = getattr(self, name)
            return own if own is not None else getattr(other, name)

        return HazardObservation(
            temperature_c=pick("temperature_c"),
            rain_mm_per_hour=pick("rain_mm_per_hour"),
            snow_mm_per_hour=pick("snow_mm_per_hour"),
            wind_speed_ms=pick("wind_speed_ms"),
            visibility_m=pick("visibility_m"),
            road_quality=pick("road_quality"),
            traffic_level=pick("traffic_level"),
            cargo_flags=self.cargo_flags | other.cargo_flags,
            condition=pick("condition"),
            road_surface=pick("road_surface"),
        )

    @property
    def has_weather(self) -> bool:
        return any(
            value is not None
            for value in (
                self.temperature_c,
                self.rain_mm_per_hour,
                self.snow_mm_per_hour,
                self.wind_speed_ms,
                self.visibility_m,
                self.condition,
            )
        )


# Vehicles above these limits get extra wind / surface risk
HIGH_SIDED_HEIGHT_M = 3.5
HEAVY_GROSS_WEIGHT_T = 20.0


@dataclass(frozen=True)
class VehicleProfile:
    """Dimensions of the vehicle driving the route."""

    height_m: Optional[float] = None
    gross_weight_t: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["VehicleProfile"]:
        if not data:
            return None
        return cls(height_m=data.get("height_m"), gross_weight_t=data.get("gross_weight_t"))

    @property
    def high_sided(self) -> bool:
        return self.height_m is not None and self.height_m > HIGH_SIDED_HEIGHT_M

    @property
    def heavy(self) -> bool:
        return self.gross_weight_t is not None and self.gross_weight_t > HEAVY_GROSS_WEIGHT_T

    def to_dict(self) -> Dict:
        return {"height_m": self.height_m, "gross_weight_t": self.gross_weight_t}


@dataclass(frozen=True)
class HazardWarning:
    """
    A weather hazard the driver will meet along the route.

    Attributes:
        hazard_type: WeatherHazardType value
        severity: HazardSeverity value
        distance_from_start_km: Where the hazard is expected
        expected_time: When the driver is expected there (None if unknown)
        description: What the hazard is
        recommendation: What the driver should do
        segment_index: Route segment the warning belongs to
    """

    hazard_type: str
    severity: str
    distance_from_start_km: float
    description: str
    recommendation: str
    expected_time: Optional[datetime] = None
    segment_index: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "hazard_type": str(self.hazard_type),
            "severity": str(self.severity),
            "distance_from_start_km": round(self.distance_from_start_km, 3),
            "expected_time": self.expected_time.isoformat() if self.expected_time else None,
            "description": self.description,
            "recommendation": self.recommendation,
            "segment_index": self.segment_index,
        }


@dataclass(frozen=True)
class RiskScore:
    score: int
    level: str
    explanation: str

    def to_dict(self) -> Dict:
        return {"score": self.score, "level": str(self.level), "explanation": self.explanation}


@dataclass(frozen=True)
class SegmentRisk:
    segment_index: int
    start_km: float
    end_km: float
    weather: RiskScore
    road_quality: RiskScore
    traffic: RiskScore
    cargo: RiskScore
    overall: RiskScore

    @property
    def length_km(self) -> float:
        return max(0.0, self.end_km - self.start_km)

    def to_dict(self) -> Dict:
        return {
            "segment_index": self.segment_index,
            "start_km": round(self.start_km, 3),
            "end_km": round(self.end_km, 3),
            "weather": self.weather.to_dict(),
            "road_quality": self.road_quality.to_dict(),
            "traffic": self.traffic.to_dict(),
            "cargo": self.cargo.to_dict(),
            "overall": self.overall.to_dict(),
        }


@dataclass(frozen=True)
class RouteRisk:
    overall: RiskScore
    factor_scores: Dict[str, float] = field(default_factory=dict)
    segments: List[SegmentRisk] = field(default_factory=list)
    peak_segment_index: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "overall": self.overall.to_dict(),
            "factor_scores": {k: round(v, 2) for k, v in self.factor_scores.items()},
            "segments": [segment.to_dict() for segment in self.segments],
            "peak_segment_index": self.peak_segment_index,
        }
