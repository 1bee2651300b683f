"""
Risk Aggregator Service.

Turns raw hazard observations (weather, road quality, traffic, cargo) into
explainable risk scores for single points, route segments and whole routes.

Weather is scored with a weighted additive model clamped to 100. Road
quality, traffic and cargo each produce their own 0-100 factor score, and
the segment/route overall score is a weighted combination of the four
factors. Factor weights are a policy decision and are configurable through
the RISK_FACTOR_WEIGHTS Django setting.

Vehicle dimensions and dangerous goods scale the affected scores, and
hazard_warnings() turns an observation into typed, located warnings with
a recommendation for the driver.

Single Responsibility: deterministic risk scoring only, no I/O.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from django.conf import settings

from common.validators import clamp
from risk_analysis.hazards import (
    CargoFlag,
    HazardObservation,
    HazardSeverity,
    HazardWarning,
    RiskLevel,
    RiskScore,
    RoadQuality,
    RoadSurface,
    RouteRisk,
    SegmentRisk,
    TrafficLevel,
    VehicleProfile,
    WeatherHazardType,
)

logger = logging.getLogger(__name__)

# Overall risk factor weights (must sum to 1 once normalised)
WEATHER_WEIGHT = 0.35
ROAD_QUALITY_WEIGHT = 0.25
TRAFFIC_WEIGHT = 0.20
CARGO_WEIGHT = 0.20

DEFAULT_RISK_FACTOR_WEIGHTS = {
    "weather": WEATHER_WEIGHT,
    "road_quality": ROAD_QUALITY_WEIGHT,
    "traffic": TRAFFIC_WEIGHT,
    "cargo": CARGO_WEIGHT,
}

# Level bands
SEVERE_THRESHOLD = 70
HIGH_THRESHOLD = 50
MODERATE_THRESHOLD = 30

ROAD_QUALITY_SCORES = {
    RoadQuality.EXCELLENT: 5,
    RoadQuality.GOOD: 20,
    RoadQuality.FAIR: 40,
    RoadQuality.POOR: 60,
    RoadQuality.VERY_POOR: 85,
}

ROAD_QUALITY_DESCRIPTIONS = {
    RoadQuality.EXCELLENT: "Road in excellent condition.",
    RoadQuality.GOOD: "Road in good condition, minor surface defects.",
    RoadQuality.FAIR: "Road in fair condition, surface damaged in places.",
    RoadQuality.POOR: "Road in poor condition, potholes and cracks.",
    RoadQuality.VERY_POOR: "Road in very poor condition, heavy surface damage.",
}

TRAFFIC_SCORES = {
    TrafficLevel.LOW: 10,
    TrafficLevel.MODERATE: 35,
    TrafficLevel.HIGH: 60,
    TrafficLevel.SEVERE: 85,
}

CARGO_SCORES = {
    CargoFlag.DANGEROUS: 50,
    CargoFlag.OVERSIZED: 30,
    CargoFlag.TEMPERATURE_SENSITIVE: 20,
    CargoFlag.FRAGILE: 20,
}

FRAGILE_ROAD_MULTIPLIER = 1.5
TEMPERATURE_SENSITIVE_EXTREME_BONUS = 15
HIGH_SIDED_WIND_MULTIPLIER = 1.3
HEAVY_LOOSE_SURFACE_MULTIPLIER = 1.4
DANGEROUS_CARGO_ROUTE_MULTIPLIER = 1.2

LOOSE_SURFACES = (RoadSurface.GRAVEL, RoadSurface.UNPAVED)

# Hazard warning triggers
STRONG_WIND_MS = 15.0
ICE_RISK_TEMPERATURE_C = 3.0
LOW_VISIBILITY_M = 1000
HEAVY_RAIN_MM_PER_HOUR = 4.0
SNOWFALL_MM_PER_HOUR = 1.0
EXTREME_COLD_C = -20
EXTREME_HEAT_C = 35


def risk_level_for(score: int) -> str:
    """Map a 0-100 score onto its risk band."""
    if score >= SEVERE_THRESHOLD:
        return RiskLevel.SEVERE
    if score >= HIGH_THRESHOLD:
        return RiskLevel.HIGH
    if score >= MODERATE_THRESHOLD:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


@dataclass(frozen=True)
class RiskFactorWeights:
    weather: float = WEATHER_WEIGHT
    road_quality: float = ROAD_QUALITY_WEIGHT
    traffic: float = TRAFFIC_WEIGHT
    cargo: float = CARGO_WEIGHT

    @classmethod
    def from_settings(cls) -> "RiskFactorWeights":
        configured = dict(DEFAULT_RISK_FACTOR_WEIGHTS)
        configured.update(getattr(settings, "RISK_FACTOR_WEIGHTS", {}) or {})
        return cls.normalised(configured)

    @classmethod
    def normalised(cls, weights: Dict[str, float]) -> "RiskFactorWeights":
        """Scale weights so they sum to 1; negative weights are rejected."""
        values = {key: float(weights.get(key, 0)) for key in DEFAULT_RISK_FACTOR_WEIGHTS}
        if any(value < 0 for value in values.values()):
            raise ValueError(f"Risk factor weights must be non-negative: {values}")

        total = sum(values.values())
        if total <= 0:
            raise ValueError("At least one risk factor weight must be positive")

        return cls(**{key: value / total for key, value in values.items()})

    def as_dict(self) -> Dict[str, float]:
        return {
            "weather": self.weather,
            "road_quality": self.road_quality,
            "traffic": self.traffic,
            "cargo": self.cargo,
        }


class RiskAggregator:
    """
    Deterministic, explainable mapping from hazard observations to risk.

    Missing fields never raise and contribute nothing; malformed values
    (negative visibility, negative precipitation) are treated as missing.
    """

    def __init__(self, weights: Optional[RiskFactorWeights] = None):
        self.weights = weights or RiskFactorWeights.from_settings()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # Weather

    def weather_points(self, observation: HazardObservation) -> Dict[str, int]:
        """Per-category weather contributions before clamping."""
        return {
            "temperature": self._temperature_points(observation.temperature_c),
            "rain": self._rain_points(observation.rain_mm_per_hour),
            "snow": self._snow_points(observation.snow_mm_per_hour),
            "wind": self._wind_points(observation.wind_speed_ms),
            "visibility": self._visibility_points(observation.visibility_m),
        }

    def score_weather(self, observation: HazardObservation) -> RiskScore:
        """
        Score weather hazards for a single observation.

        Args:
            observation: Hazard bundle; only its weather fields are used

        Returns:
            RiskScore clamped to [0, 100] with level and explanation
        """
        raw = sum(self.weather_points(observation).values())
        score = int(clamp(raw))

        self.logger.debug(f"Weather score: raw={raw}, clamped={score}")
        return RiskScore(
            score=score,
            level=risk_level_for(score),
            explanation=self.explain_weather(observation),
        )

    def explain_weather(self, observation: HazardObservation) -> str:
        """
        Build a human-readable description of the weather hazards.

        Each hazard category is checked independently and contributes its
        own clause.
        """
        clauses = []
        condition = (observation.condition or "").upper()
        rain = _non_negative(observation.rain_mm_per_hour)
        snow = _non_negative(observation.snow_mm_per_hour)
        wind = _non_negative(observation.wind_speed_ms)
        visibility = _non_negative(observation.visibility_m)
        temperature = observation.temperature_c

        if condition == "THUNDERSTORM":
            clauses.append("Thunderstorm risk.")

        if rain is not None and rain > 5:
            clauses.append("Heavy rain, reduced visibility and road grip.")
        elif (rain is not None and rain > 0) or condition in ("RAIN", "DRIZZLE"):
            clauses.append("Rain, possibly reduced road grip.")

        if (snow is not None and snow > 0) or condition == "SNOW":
            clauses.append("Snowfall, difficult road conditions and reduced visibility.")

        if condition in ("FOG", "MIST") or (visibility is not None and visibility < 1000):
            clauses.append("Fog or mist, severely limited visibility.")

        if wind is not None and wind > 15:
            clauses.append("Strong wind, danger for high-sided vehicles.")
        elif wind is not None and wind > 10:
            clauses.append("Moderate wind, handling may be affected.")

        if temperature is not None:
            if temperature < -15:
                clauses.append("Extremely low temperature, risk of fuel and system freezing.")
            elif temperature < -5:
                clauses.append("Low temperature, possible road icing.")
            elif temperature > 30:
                clauses.append("High temperature, risk of engine overheating.")

        if not clauses:
            clauses.append("Favorable weather conditions, no particular risks.")

        return " ".join(clauses)

    def hazard_warnings(
        self,
        observation: HazardObservation,
        distance_from_start_km: float = 0.0,
        expected_time: Optional[datetime] = None,
        segment_index: Optional[int] = None,
        vehicle: Optional[VehicleProfile] = None,
    ) -> List[HazardWarning]:
        """
        Typed warnings for the weather hazards of one observation.

        Each hazard is checked independently, so one observation can raise
        several warnings. High and severe warnings mention dangerous goods
        when the observation carries them.

        Args:
            observation: Hazard bundle at the warning location
            distance_from_start_km: Where the driver meets the hazard
            expected_time: When the driver is expected there
            segment_index: Route segment the observation belongs to
            vehicle: Optional vehicle; high-sided vehicles get a rollover note

        Returns:
            List of HazardWarning, empty for benign weather
        """
        rain = _non_negative(observation.rain_mm_per_hour)
        snow = _non_negative(observation.snow_mm_per_hour)
        wind = _non_negative(observation.wind_speed_ms)
        visibility = _non_negative(observation.visibility_m)
        temperature = observation.temperature_c
        condition = (observation.condition or "").upper()

        found = []

        if wind is not None and wind > STRONG_WIND_MS:
            description = f"Strong wind of {wind:.1f} m/s, vehicle stability at risk."
            if vehicle is not None and vehicle.high_sided:
                description += " Increased rollover risk for a high-sided vehicle."
            found.append((
                WeatherHazardType.STRONG_WIND,
                _wind_severity(wind),
                description,
                "Reduce speed, keep a firm grip on the wheel and avoid sudden manoeuvres.",
            ))

        if temperature is not None and temperature < ICE_RISK_TEMPERATURE_C and (rain or snow):
            found.append((
                WeatherHazardType.ICE_RISK,
                _ice_severity(temperature, rain),
                f"Possible black ice from low temperature and precipitation. "
                f"Temperature: {temperature:.1f}°C.",
                "Reduce speed, increase the following distance and avoid hard braking. "
                "Fit snow chains if needed.",
            ))

        if visibility is not None and visibility < LOW_VISIBILITY_M:
            found.append((
                WeatherHazardType.LOW_VISIBILITY,
                _descending_severity(visibility, severe_below=200, high_below=500),
                f"Limited visibility: {visibility:.0f} m. Fog is possible.",
                "Switch on fog lights, reduce speed and increase the distance to other vehicles.",
            ))

        if rain is not None and rain > HEAVY_RAIN_MM_PER_HOUR:
            found.append((
                WeatherHazardType.HEAVY_RAIN,
                _ascending_severity(rain, severe_above=8.0, high_above=6.0),
                f"Heavy rain: {rain:.1f} mm/h. Reduced road grip.",
                "Reduce speed, increase the following distance and avoid sudden manoeuvres.",
            ))

        if snow is not None and snow > SNOWFALL_MM_PER_HOUR:
            found.append((
                WeatherHazardType.SNOW,
                _ascending_severity(snow, severe_above=4.0, high_above=2.0),
                f"Snowfall: {snow:.1f} mm/h. Reduced visibility and road grip.",
                "Reduce speed, increase the following distance and be ready to fit snow chains.",
            ))

        if condition == "THUNDERSTORM":
            found.append((
                WeatherHazardType.THUNDERSTORM,
                HazardSeverity.HIGH,
                "Thunderstorm expected, sudden gusts and downpours likely.",
                "Avoid stopping on exposed ground and be ready for sudden gusts.",
            ))

        if temperature is not None and temperature < EXTREME_COLD_C:
            found.append((
                WeatherHazardType.EXTREME_COLD,
                HazardSeverity.HIGH,
                f"Extreme cold: {temperature:.1f}°C. Risk of fuel and system freezing.",
                "Use winter diesel and check the engine pre-heater before long stops.",
            ))
        elif temperature is not None and temperature > EXTREME_HEAT_C:
            found.append((
                WeatherHazardType.EXTREME_HEAT,
                HazardSeverity.MODERATE,
                f"Extreme heat: {temperature:.1f}°C. Risk of engine overheating.",
                "Watch the engine temperature and tyre pressure.",
            ))

        dangerous = CargoFlag.DANGEROUS in observation.cargo_flags
        warnings = []
        for hazard_type, severity, description, recommendation in found:
            if dangerous and severity in (HazardSeverity.HIGH, HazardSeverity.SEVERE):
                description += " Increased risk when carrying dangerous goods."
            warnings.append(
                HazardWarning(
                    hazard_type=hazard_type,
                    severity=severity,
                    distance_from_start_km=distance_from_start_km,
                    expected_time=expected_time,
                    description=description,
                    recommendation=recommendation,
                    segment_index=segment_index,
                )
            )

        if warnings:
            self.logger.debug(
                f"{len(warnings)} hazard warnings at {distance_from_start_km:.1f} km: "
                f"{', '.join(w.hazard_type for w in warnings)}"
            )
        return warnings

    # Other factors

    def score_road_quality(self, observation: HazardObservation) -> RiskScore:
        quality = (observation.road_quality or "").upper()
        base = ROAD_QUALITY_SCORES.get(quality, 0)
        explanation = ROAD_QUALITY_DESCRIPTIONS.get(quality, "Road quality unknown.")

        if CargoFlag.FRAGILE in observation.cargo_flags and quality in (
            RoadQuality.POOR,
            RoadQuality.VERY_POOR,
        ):
            base = base * FRAGILE_ROAD_MULTIPLIER
            explanation += " High risk of damage to fragile cargo."

        score = int(round(clamp(base)))
        return RiskScore(score=score, level=risk_level_for(score), explanation=explanation)

    def score_traffic(self, observation: HazardObservation) -> RiskScore:
        level = (observation.traffic_level or "").upper()
        score = TRAFFIC_SCORES.get(level, 0)
        if level in TRAFFIC_SCORES:
            explanation = f"{TrafficLevel(level).label} traffic."
        else:
            explanation = "Traffic level unknown."
        return RiskScore(score=score, level=risk_level_for(score), explanation=explanation)

    def score_cargo(self, observation: HazardObservation) -> RiskScore:
        flags = sorted(flag for flag in observation.cargo_flags if flag in CARGO_SCORES)
        if not flags:
            return RiskScore(score=0, level=RiskLevel.LOW, explanation="No special cargo.")

        raw = sum(CARGO_SCORES[flag] for flag in flags)
        clauses = [f"{CargoFlag(flag).label} cargo." for flag in flags]

        temperature = observation.temperature_c
        if (
            CargoFlag.TEMPERATURE_SENSITIVE in flags
            and temperature is not None
            and (temperature < 0 or temperature > 30)
        ):
            raw += TEMPERATURE_SENSITIVE_EXTREME_BONUS
            clauses.append("Outside temperature threatens the cargo temperature range.")

        score = int(clamp(raw))
        return RiskScore(score=score, level=risk_level_for(score), explanation=" ".join(clauses))

    # Aggregation

    def assess_segment(
        self,
        observation: HazardObservation,
        segment_index: int = 0,
        start_km: float = 0.0,
        end_km: float = 0.0,
        vehicle: Optional[VehicleProfile] = None,
    ) -> SegmentRisk:
        """
        Score every factor of a segment and combine them.

        High-sided vehicles raise the weather score in strong wind; heavy
        vehicles raise the road score on gravel or unpaved surfaces.
        """
        weather = self.score_weather(observation)
        road = self.score_road_quality(observation)
        if vehicle is not None:
            weather, road = self._adjust_for_vehicle(observation, vehicle, weather, road)
        traffic = self.score_traffic(observation)
        cargo = self.score_cargo(observation)

        factors = {
            "weather": weather.score,
            "road_quality": road.score,
            "traffic": traffic.score,
            "cargo": cargo.score,
        }
        overall_score = self._combine(factors)
        overall = RiskScore(
            score=overall_score,
            level=risk_level_for(overall_score),
            explanation=self._explain_overall(overall_score, factors),
        )

        return SegmentRisk(
            segment_index=segment_index,
            start_km=start_km,
            end_km=end_km,
            weather=weather,
            road_quality=road,
            traffic=traffic,
            cargo=cargo,
            overall=overall,
        )

    def assess_route(
        self, segments: Sequence[SegmentRisk], cargo_flags: Iterable[str] = ()
    ) -> RouteRisk:
        """
        Combine segment risks into one route score.

        Each factor is averaged over the segments weighted by segment length
        (equal weights when the route has no length), then the factor means
        are combined with the configured weights. Dangerous goods scale the
        combined score by DANGEROUS_CARGO_ROUTE_MULTIPLIER.
        """
        if not segments:
            return RouteRisk(
                overall=RiskScore(
                    score=0, level=RiskLevel.LOW, explanation="No segments to assess."
                )
            )

        total_length = sum(segment.length_km for segment in segments)
        if total_length > 0:
            shares = [segment.length_km / total_length for segment in segments]
        else:
            shares = [1 / len(segments)] * len(segments)

        factor_scores = {
            "weather": sum(s.weather.score * w for s, w in zip(segments, shares)),
            "road_quality": sum(s.road_quality.score * w for s, w in zip(segments, shares)),
            "traffic": sum(s.traffic.score * w for s, w in zip(segments, shares)),
            "cargo": sum(s.cargo.score * w for s, w in zip(segments, shares)),
        }

        overall_score = self._combine(factor_scores)
        dangerous = CargoFlag.DANGEROUS in frozenset(cargo_flags)
        if dangerous:
            overall_score = int(round(clamp(overall_score * DANGEROUS_CARGO_ROUTE_MULTIPLIER)))
        peak = max(segments, key=lambda s: s.overall.score)

        explanation = self._explain_overall(overall_score, factor_scores)
        if dangerous:
            explanation += " Dangerous goods raise the overall route risk."
        if peak.overall.score > 0:
            explanation += (
                f" Riskiest segment #{peak.segment_index} "
                f"({peak.start_km:.1f}-{peak.end_km:.1f} km) scores {peak.overall.score}."
            )

        self.logger.info(
            f"Route risk assessed over {len(segments)} segments: score={overall_score}"
        )
        return RouteRisk(
            overall=RiskScore(
                score=overall_score,
                level=risk_level_for(overall_score),
                explanation=explanation,
            ),
            factor_scores=factor_scores,
            segments=list(segments),
            peak_segment_index=peak.segment_index,
        )

    def _adjust_for_vehicle(
        self,
        observation: HazardObservation,
        vehicle: VehicleProfile,
        weather: RiskScore,
        road: RiskScore,
    ):
        wind = _non_negative(observation.wind_speed_ms)
        if vehicle.high_sided and wind is not None and wind > STRONG_WIND_MS:
            weather = _scaled(
                weather, HIGH_SIDED_WIND_MULTIPLIER, "Increased rollover risk for a high-sided vehicle."
            )

        surface = (observation.road_surface or "").upper()
        if vehicle.heavy and surface in LOOSE_SURFACES:
            road = _scaled(
                road,
                HEAVY_LOOSE_SURFACE_MULTIPLIER,
                f"High risk for a heavy vehicle on a {RoadSurface(surface).label.lower()} surface.",
            )
        return weather, road

    def _combine(self, factors: Dict[str, float]) -> int:
        weights = self.weights.as_dict()
        raw = sum(factors[name] * weights[name] for name in weights)
        return int(round(clamp(raw)))

    def _explain_overall(self, score: int, factors: Dict[str, float]) -> str:
        contributing = [
            f"{name.replace('_', ' ')} {value:.0f}"
            for name, value in sorted(factors.items(), key=lambda item: -item[1])
            if value > 0
        ]
        level = RiskLevel(risk_level_for(score)).label
        if not contributing:
            return f"{level} risk: no significant hazards."
        return f"{level} risk ({score}/100): " + ", ".join(contributing) + "."

    # Weather contribution tables

    @staticmethod
    def _temperature_points(temperature: Optional[float]) -> int:
        if temperature is None:
            return 0
        if temperature < -20:
            return 30
        if temperature < -10:
            return 20
        if temperature < 0:
            return 10
        if temperature > 35:
            return 15
        return 0

    @staticmethod
    def _rain_points(rain: Optional[float]) -> int:
        if rain is None:
            return 0
        if rain > 10:
            return 30
        if rain > 5:
            return 20
        if rain > 2:
            return 10
        return 0

    @staticmethod
    def _snow_points(snow: Optional[float]) -> int:
        if snow is None:
            return 0
        if snow > 5:
            return 40
        if snow > 2:
            return 25
        if snow > 0.5:
            return 15
        return 0

    @staticmethod
    def _wind_points(wind: Optional[float]) -> int:
        if wind is None:
            return 0
        if wind > 20:
            return 35
        if wind > 15:
            return 25
        if wind > 10:
            return 15
        if wind > 5:
            return 5
        return 0

    @staticmethod
    def _visibility_points(visibility: Optional[float]) -> int:
        visibility = _non_negative(visibility)
        if visibility is None:
            return 0
        if visibility < 100:
            return 50
        if visibility < 500:
            return 35
        if visibility < 1000:
            return 20
        if visibility < 2000:
            return 10
        return 0


def _non_negative(value: Optional[float]) -> Optional[float]:
    """Treat negative or NaN readings as missing."""
    if value is None or value != value or value < 0:
        return None
    return value


def _scaled(risk: RiskScore, multiplier: float, note: str) -> RiskScore:
    score = int(round(clamp(risk.score * multiplier)))
    return RiskScore(score=score, level=risk_level_for(score), explanation=f"{risk.explanation} {note}")


def _wind_severity(wind: float) -> str:
    if wind >= 25:
        return HazardSeverity.SEVERE
    if wind >= 20:
        return HazardSeverity.HIGH
    return HazardSeverity.MODERATE


def _ice_severity(temperature: float, rain: Optional[float]) -> str:
    if temperature < -2 and rain is not None and rain > 1:
        return HazardSeverity.SEVERE
    if temperature < 0:
        return HazardSeverity.HIGH
    return HazardSeverity.MODERATE


def _ascending_severity(value: float, severe_above: float, high_above: float) -> str:
    if value > severe_above:
        return HazardSeverity.SEVERE
    if value > high_above:
        return HazardSeverity.HIGH
    return HazardSeverity.MODERATE


def _descending_severity(value: float, severe_below: float, high_below: float) -> str:
    if value < severe_below:
        return HazardSeverity.SEVERE
    if value < high_below:
        return HazardSeverity.HIGH
    return HazardSeverity.MODERATE
