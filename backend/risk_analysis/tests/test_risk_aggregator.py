"""
Tests for hazard risk scoring.
"""

from datetime import datetime, timezone as dt_timezone

import pytest

from risk_analysis.hazards import (
    CargoFlag,
    HazardObservation,
    HazardSeverity,
    RiskLevel,
    RoadQuality,
    RoadSurface,
    TrafficLevel,
    VehicleProfile,
    WeatherHazardType,
)
from risk_analysis.services import RiskAggregator, RiskFactorWeights, risk_level_for


class TestWeatherScore:
    def setup_method(self):
        self.aggregator = RiskAggregator(RiskFactorWeights())

    def test_extreme_weather_is_clamped_to_severe(self):
        observation = HazardObservation(
            temperature_c=-25, rain_mm_per_hour=12, wind_speed_ms=22, visibility_m=80
        )

        score = self.aggregator.score_weather(observation)

        assert self.aggregator.weather_points(observation) == {
            "temperature": 30,
            "rain": 30,
            "snow": 0,
            "wind": 35,
            "visibility": 50,
        }
        assert score.score == 100
        assert score.level == RiskLevel.SEVERE
        assert "Heavy rain" in score.explanation
        assert "Strong wind" in score.explanation
        assert "Fog or mist" in score.explanation
        assert "Extremely low temperature" in score.explanation

    @pytest.mark.parametrize(
        "temperature, points",
        [(-25, 30), (-20, 20), (-10, 10), (-0.5, 10), (0, 0), (35, 0), (36, 15), (None, 0)],
    )
    def test_temperature_bands(self, temperature, points):
        observation = HazardObservation(temperature_c=temperature)

        assert self.aggregator.weather_points(observation)["temperature"] == points

    @pytest.mark.parametrize(
        "field, values",
        [
            ("rain_mm_per_hour", [0, 3, 6, 11, 50]),
            ("snow_mm_per_hour", [0, 1, 3, 6, 20]),
            ("wind_speed_ms", [0, 6, 11, 16, 21]),
        ],
    )
    def test_score_grows_with_hazard_intensity(self, field, values):
        scores = [
            self.aggregator.score_weather(HazardObservation(**{field: value})).score for value in values
        ]

        assert scores == sorted(scores)
        assert scores[0] == 0
        assert scores[-1] > 0

    def test_lower_visibility_never_lowers_the_score(self):
        scores = [
            self.aggregator.score_weather(HazardObservation(visibility_m=value)).score
            for value in [5000, 1500, 800, 300, 50]
        ]

        assert scores == sorted(scores)

    def test_empty_observation_is_low_risk(self):
        score = self.aggregator.score_weather(HazardObservation())

        assert score.score == 0
        assert score.level == RiskLevel.LOW
        assert score.explanation == "Favorable weather conditions, no particular risks."

    def test_malformed_readings_contribute_nothing(self):
        observation = HazardObservation(visibility_m=-5, rain_mm_per_hour=-3, wind_speed_ms=float("nan"))

        score = self.aggregator.score_weather(observation)

        assert score.score == 0
        assert "Fog" not in score.explanation

    def test_one_clause_per_hazard_category(self):
        observation = HazardObservation(rain_mm_per_hour=3, wind_speed_ms=12)

        explanation = self.aggregator.explain_weather(observation)

        assert explanation == "Rain, possibly reduced road grip. Moderate wind, handling may be affected."

    def test_condition_alone_adds_its_clause(self):
        explanation = self.aggregator.explain_weather(HazardObservation(condition="THUNDERSTORM"))

        assert explanation == "Thunderstorm risk."

    @pytest.mark.parametrize(
        "score, level",
        [(0, RiskLevel.LOW), (29, RiskLevel.LOW), (30, RiskLevel.MODERATE), (50, RiskLevel.HIGH), (70, RiskLevel.SEVERE)],
    )
    def test_level_bands(self, score, level):
        assert risk_level_for(score) == level


class TestFactorScores:
    def setup_method(self):
        self.aggregator = RiskAggregator(RiskFactorWeights())

    @pytest.mark.parametrize(
        "quality, flags, expected",
        [
            (RoadQuality.EXCELLENT, frozenset(), 5),
            (RoadQuality.POOR, frozenset(), 60),
            (RoadQuality.POOR, frozenset({CargoFlag.FRAGILE}), 90),
            (RoadQuality.VERY_POOR, frozenset({CargoFlag.FRAGILE}), 100),
            (RoadQuality.GOOD, frozenset({CargoFlag.FRAGILE}), 20),
            (None, frozenset(), 0),
        ],
    )
    def test_road_quality(self, quality, flags, expected):
        observation = HazardObservation(road_quality=quality, cargo_flags=flags)

        assert self.aggregator.score_road_quality(observation).score == expected

    def test_traffic(self):
        score = self.aggregator.score_traffic(HazardObservation(traffic_level=TrafficLevel.HIGH))

        assert score.score == 60
        assert score.explanation == "High traffic."

    def test_cargo_flags_add_up(self):
        observation = HazardObservation(cargo_flags=frozenset({CargoFlag.DANGEROUS, CargoFlag.OVERSIZED}))

        assert self.aggregator.score_cargo(observation).score == 80

    @pytest.mark.parametrize("temperature, expected", [(-5, 35), (20, 20), (31, 35), (None, 20)])
    def test_temperature_sensitive_cargo(self, temperature, expected):
        observation = HazardObservation(
            temperature_c=temperature, cargo_flags=frozenset({CargoFlag.TEMPERATURE_SENSITIVE})
        )

        assert self.aggregator.score_cargo(observation).score == expected


class TestAggregation:
    def setup_method(self):
        self.aggregator = RiskAggregator(RiskFactorWeights())

    def test_segment_combines_weighted_factors(self):
        observation = HazardObservation(
            temperature_c=-25,
            rain_mm_per_hour=12,
            wind_speed_ms=22,
            visibility_m=80,
            road_quality=RoadQuality.POOR,
            traffic_level=TrafficLevel.HIGH,
        )

        segment = self.aggregator.assess_segment(observation, segment_index=3, start_km=10, end_km=30)

        assert segment.overall.score == 62
        assert segment.overall.level == RiskLevel.HIGH
        assert segment.segment_index == 3
        assert segment.length_km == 20

    def test_route_weights_segments_by_length(self):
        snowy = self.aggregator.assess_segment(
            HazardObservation(snow_mm_per_hour=6), segment_index=0, start_km=0, end_km=100
        )
        clear = self.aggregator.assess_segment(HazardObservation(), segment_index=1, start_km=100, end_km=200)

        route = self.aggregator.assess_route([snowy, clear])

        assert route.factor_scores["weather"] == pytest.approx(20)
        assert route.overall.score == 7
        assert route.peak_segment_index == 0
        assert "Riskiest segment #0" in route.overall.explanation

    def test_zero_length_segments_weigh_equally(self):
        first = self.aggregator.assess_segment(HazardObservation(snow_mm_per_hour=6), segment_index=0)
        second = self.aggregator.assess_segment(HazardObservation(), segment_index=1)

        route = self.aggregator.assess_route([first, second])

        assert route.factor_scores["weather"] == pytest.approx(20)

    def test_empty_route_is_low_risk(self):
        route = self.aggregator.assess_route([])

        assert route.overall.score == 0
        assert route.overall.level == RiskLevel.LOW
        assert route.peak_segment_index is None

    def test_weights_are_normalised(self):
        weights = RiskFactorWeights.normalised({"weather": 2, "road_quality": 1, "traffic": 1, "cargo": 0})

        assert weights.weather == pytest.approx(0.5)
        assert sum(weights.as_dict().values()) == pytest.approx(1.0)

    @pytest.mark.parametrize(
        "weights",
        [
            {"weather": -1, "road_quality": 1, "traffic": 1, "cargo": 1},
            {"weather": 0, "road_quality": 0, "traffic": 0, "cargo": 0},
        ],
    )
    def test_invalid_weights_are_rejected(self, weights):
        with pytest.raises(ValueError):
            RiskFactorWeights.normalised(weights)

    def test_weights_from_settings(self, settings):
        settings.RISK_FACTOR_WEIGHTS = {"weather": 1, "road_quality": 0, "traffic": 0, "cargo": 0}

        aggregator = RiskAggregator()
        segment = aggregator.assess_segment(HazardObservation(snow_mm_per_hour=6))

        assert segment.overall.score == 40


class TestHazardObservation:
    def test_from_dict_normalises_loose_payloads(self):
        observation = HazardObservation.from_dict(
            {
                "temperature_c": "-3.5",
                "visibility_m": "",
                "road_quality": "poor",
                "cargo_flags": ["fragile"],
                "condition": "rain",
            }
        )

        assert observation.temperature_c == -3.5
        assert observation.visibility_m is None
        assert observation.road_quality == RoadQuality.POOR
        assert observation.cargo_flags == frozenset({CargoFlag.FRAGILE})
        assert observation.condition == "RAIN"

    def test_merge_fills_only_missing_fields(self):
        known = HazardObservation(temperature_c=5, cargo_flags=frozenset({CargoFlag.FRAGILE}))
        fetched = HazardObservation(temperature_c=-10, wind_speed_ms=12, cargo_flags=frozenset({CargoFlag.DANGEROUS}))

        merged = known.merged_with(fetched)

        assert merged.temperature_c == 5
        assert merged.wind_speed_ms == 12
        assert merged.cargo_flags == frozenset({CargoFlag.FRAGILE, CargoFlag.DANGEROUS})
        assert merged.has_weather
        assert not HazardObservation(road_quality=RoadQuality.GOOD).has_weather


class TestHazardWarnings:
    def setup_method(self):
        self.aggregator = RiskAggregator(RiskFactorWeights())

    def kinds(self, **fields):
        return [(w.hazard_type, w.severity) for w in self.aggregator.hazard_warnings(HazardObservation(**fields))]

    @pytest.mark.parametrize(
        "field, value, expected",
        [
            ("wind_speed_ms", 15, []),
            ("wind_speed_ms", 16, [(WeatherHazardType.STRONG_WIND, HazardSeverity.MODERATE)]),
            ("wind_speed_ms", 20, [(WeatherHazardType.STRONG_WIND, HazardSeverity.HIGH)]),
            ("wind_speed_ms", 25, [(WeatherHazardType.STRONG_WIND, HazardSeverity.SEVERE)]),
            ("visibility_m", 1000, []),
            ("visibility_m", 900, [(WeatherHazardType.LOW_VISIBILITY, HazardSeverity.MODERATE)]),
            ("visibility_m", 400, [(WeatherHazardType.LOW_VISIBILITY, HazardSeverity.HIGH)]),
            ("visibility_m", 150, [(WeatherHazardType.LOW_VISIBILITY, HazardSeverity.SEVERE)]),
            ("rain_mm_per_hour", 4, []),
            ("rain_mm_per_hour", 5, [(WeatherHazardType.HEAVY_RAIN, HazardSeverity.MODERATE)]),
            ("rain_mm_per_hour", 7, [(WeatherHazardType.HEAVY_RAIN, HazardSeverity.HIGH)]),
            ("rain_mm_per_hour", 9, [(WeatherHazardType.HEAVY_RAIN, HazardSeverity.SEVERE)]),
            ("snow_mm_per_hour", 1, []),
            ("snow_mm_per_hour", 1.5, [(WeatherHazardType.SNOW, HazardSeverity.MODERATE)]),
            ("snow_mm_per_hour", 3, [(WeatherHazardType.SNOW, HazardSeverity.HIGH)]),
            ("snow_mm_per_hour", 5, [(WeatherHazardType.SNOW, HazardSeverity.SEVERE)]),
            ("temperature_c", -25, [(WeatherHazardType.EXTREME_COLD, HazardSeverity.HIGH)]),
            ("temperature_c", 38, [(WeatherHazardType.EXTREME_HEAT, HazardSeverity.MODERATE)]),
            ("temperature_c", 20, []),
        ],
    )
    def test_severity_bands(self, field, value, expected):
        assert self.kinds(**{field: value}) == expected

    @pytest.mark.parametrize(
        "fields, severity",
        [
            ({"temperature_c": 2, "rain_mm_per_hour": 0.5}, HazardSeverity.MODERATE),
            ({"temperature_c": -1, "snow_mm_per_hour": 0.5}, HazardSeverity.HIGH),
            ({"temperature_c": -5, "rain_mm_per_hour": 2}, HazardSeverity.SEVERE),
        ],
    )
    def test_ice_risk_needs_cold_and_precipitation(self, fields, severity):
        assert self.kinds(**fields) == [(WeatherHazardType.ICE_RISK, severity)]

    def test_no_ice_risk_on_dry_roads(self):
        assert self.kinds(temperature_c=-1, rain_mm_per_hour=0) == []

    def test_thunderstorm_condition(self):
        assert self.kinds(condition="thunderstorm") == [(WeatherHazardType.THUNDERSTORM, HazardSeverity.HIGH)]

    def test_warning_carries_location_and_time(self):
        at = datetime(2024, 1, 15, 9, 0, tzinfo=dt_timezone.utc)

        (warning,) = self.aggregator.hazard_warnings(
            HazardObservation(visibility_m=150),
            distance_from_start_km=123.45678,
            expected_time=at,
            segment_index=2,
        )

        assert warning.to_dict() == {
            "hazard_type": "LOW_VISIBILITY",
            "severity": "SEVERE",
            "distance_from_start_km": 123.457,
            "expected_time": "2024-01-15T09:00:00+00:00",
            "description": "Limited visibility: 150 m. Fog is possible.",
            "recommendation": "Switch on fog lights, reduce speed and increase the distance to other vehicles.",
            "segment_index": 2,
        }

    def test_dangerous_goods_note_only_on_serious_warnings(self):
        observation = HazardObservation(
            wind_speed_ms=16, rain_mm_per_hour=9, cargo_flags=frozenset({CargoFlag.DANGEROUS})
        )

        wind, rain = self.aggregator.hazard_warnings(observation)

        assert "dangerous goods" not in wind.description
        assert rain.description.endswith("Increased risk when carrying dangerous goods.")

    def test_high_sided_vehicle_gets_rollover_note(self):
        (warning,) = self.aggregator.hazard_warnings(
            HazardObservation(wind_speed_ms=18), vehicle=VehicleProfile(height_m=4.0)
        )

        assert "Increased rollover risk for a high-sided vehicle." in warning.description


class TestVehicleAndCargoAdjustments:
    def setup_method(self):
        self.aggregator = RiskAggregator(RiskFactorWeights())

    def test_high_sided_vehicle_in_strong_wind(self):
        windy = HazardObservation(wind_speed_ms=22)

        plain = self.aggregator.assess_segment(windy)
        tall = self.aggregator.assess_segment(windy, vehicle=VehicleProfile(height_m=4.0))

        assert tall.weather.score == int(round(min(100, plain.weather.score * 1.3)))
        assert tall.weather.score > plain.weather.score
        assert tall.overall.score >= plain.overall.score
        assert tall.weather.explanation.endswith("Increased rollover risk for a high-sided vehicle.")

    def test_low_vehicle_or_light_wind_is_unchanged(self):
        breezy = HazardObservation(wind_speed_ms=12)

        assert (
            self.aggregator.assess_segment(breezy, vehicle=VehicleProfile(height_m=4.0)).weather
            == self.aggregator.assess_segment(breezy).weather
        )
        windy = HazardObservation(wind_speed_ms=22)
        assert (
            self.aggregator.assess_segment(windy, vehicle=VehicleProfile(height_m=3.0)).weather
            == self.aggregator.assess_segment(windy).weather
        )

    @pytest.mark.parametrize("surface, label", [(RoadSurface.GRAVEL, "gravel"), (RoadSurface.UNPAVED, "unpaved")])
    def test_heavy_vehicle_on_loose_surface(self, surface, label):
        observation = HazardObservation(road_quality=RoadQuality.POOR, road_surface=surface)

        segment = self.aggregator.assess_segment(observation, vehicle=VehicleProfile(gross_weight_t=26))

        assert segment.road_quality.score == 84
        assert segment.road_quality.level == RiskLevel.SEVERE
        assert f"High risk for a heavy vehicle on a {label} surface." in segment.road_quality.explanation

    def test_heavy_vehicle_on_paved_road_is_unchanged(self):
        observation = HazardObservation(road_quality=RoadQuality.POOR, road_surface=RoadSurface.PAVED)

        segment = self.aggregator.assess_segment(observation, vehicle=VehicleProfile(gross_weight_t=26))

        assert segment.road_quality.score == 60

    def test_dangerous_cargo_scales_route_score(self):
        snowy = self.aggregator.assess_segment(
            HazardObservation(snow_mm_per_hour=6), segment_index=0, start_km=0, end_km=100
        )
        clear = self.aggregator.assess_segment(HazardObservation(), segment_index=1, start_km=100, end_km=200)

        plain = self.aggregator.assess_route([snowy, clear])
        dangerous = self.aggregator.assess_route([snowy, clear], cargo_flags={CargoFlag.DANGEROUS})

        assert plain.overall.score == 7
        assert dangerous.overall.score == 8
        assert "Dangerous goods raise the overall route risk." in dangerous.overall.explanation
        assert "Dangerous goods" not in plain.overall.explanation


class TestVehicleProfile:
    def test_from_dict(self):
        vehicle = VehicleProfile.from_dict({"height_m": 4.1, "gross_weight_t": 40})

        assert vehicle.high_sided is True
        assert vehicle.heavy is True
        assert VehicleProfile.from_dict(None) is None
        assert VehicleProfile.from_dict({}) is None

    def test_thresholds_are_exclusive(self):
        vehicle = VehicleProfile(height_m=3.5, gross_weight_t=20)

        assert vehicle.high_sided is False
        assert vehicle.heavy is False
        assert VehicleProfile().to_dict() == {"height_m": None, "gross_weight_t": None}
