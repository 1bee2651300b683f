"""
Tests for the route analysis pipeline with in-memory collaborators.
"""

import threading

import pytest

from common.deadline import AnalysisDeadline
from common.exceptions import (
    ComplianceViolation,
    ExternalCollaboratorUnavailable,
    RouteAnalysisFailed,
    RouteValidationError,
)
from common.tests.factories import DEPARTURE, driver_state, minutes_after, straight_route
from hos_compliance.duty_state import DutyState
from hos_compliance.rest_stops import AmenityType, PointOfInterest
from hos_compliance.services import TripTimeSimulator
from risk_analysis.hazards import (
    HazardObservation,
    HazardSeverity,
    RiskLevel,
    RoadQuality,
    RoadSurface,
    TrafficLevel,
    VehicleProfile,
    WeatherHazardType,
)
from routes.route_profile import RouteProfile
from routes.services import ComplianceReport, RouteAnalysisRequest, RouteAnalysisService

STORM = HazardObservation(temperature_c=-25, rain_mm_per_hour=12, wind_speed_ms=22, visibility_m=80)


class FakeWeatherService:
    def __init__(self, observation=None, error=None):
        self.observation = observation or HazardObservation(temperature_c=12)
        self.error = error
        self.calls = []
        self.deadlines = []

    def get_observation(self, lat, lon, at=None, deadline=None):
        self.calls.append((lat, lon, at))
        self.deadlines.append(deadline)
        if self.error:
            raise self.error
        return self.observation


class FakeRoadConditionsService:
    def __init__(self, conditions=None, error=None):
        self.conditions = conditions or HazardObservation()
        self.error = error
        self.calls = []

    def get_conditions(self, lat, lon, at=None, deadline=None):
        self.calls.append((lat, lon, at))
        if self.error:
            raise self.error
        return self.conditions


class FakePOIService:
    def __init__(self, results=()):
        self.results = list(results)
        self.calls = 0

    def search_nearby(self, lat, lon, radius_km, amenity_types, deadline=None):
        self.calls += 1
        return list(self.results)


class FakeFuelService:
    def get_fuel_price(self, lat, lon, fuel_type="diesel", at=None, deadline=None):
        raise ExternalCollaboratorUnavailable("fuel_price", "FUEL_PRICE_API_URL is not configured")


def analysis_request(rows=((0, 0), (400, 300), (800, 600)), state=None, **kwargs):
    return RouteAnalysisRequest(
        profile=straight_route(list(rows)),
        driver_state=state or DutyState.fresh(DEPARTURE),
        **kwargs,
    )


class TestRouteAnalysisService:
    def setup_method(self):
        self.weather = FakeWeatherService()
        self.roads = FakeRoadConditionsService(
            HazardObservation(road_quality=RoadQuality.GOOD, traffic_level=TrafficLevel.LOW)
        )
        self.pois = FakePOIService()
        self.service = RouteAnalysisService(
            weather_service=self.weather,
            road_conditions_service=self.roads,
            poi_service=self.pois,
            fuel_service=FakeFuelService(),
        )

    def test_report_for_ten_hour_route(self):
        report = self.service.analyze(analysis_request(reference="TRIP-1"))

        assert isinstance(report, ComplianceReport)
        assert report.reference == "TRIP-1"
        assert report.compliant is False
        assert report.compliant_with_rest_stops is True
        assert len(report.rest_stops) == 2
        assert all(stop.synthetic for stop in report.rest_stops)
        assert len(report.segment_risks) == 2
        assert report.route_risk.overall.level == RiskLevel.LOW
        assert report.degraded is False
        assert report.warnings == ()
        assert report.arrival_time == minutes_after(DEPARTURE, 690)
        assert "2 mandatory rest stops required (2 short breaks)" in report.summary
        assert "0 of 2 rest stops matched to a real location." in report.summary

    def test_lookups_use_segment_midpoint_and_passage_time(self):
        self.service.analyze(analysis_request())

        first, second = self.weather.calls
        assert first[:2] == pytest.approx((52.0, 20.0))
        assert first[2] == minutes_after(DEPARTURE, 150)
        # the short break at 270 min is already behind the driver
        assert second[2] == minutes_after(DEPARTURE, 450 + 45)

    def test_known_hazards_skip_lookups(self):
        hazards = (
            HazardObservation(temperature_c=-25, road_quality=RoadQuality.POOR, traffic_level=TrafficLevel.HIGH),
        )

        report = self.service.analyze(analysis_request(segment_hazards=hazards))

        assert len(self.weather.calls) == 1
        assert len(self.roads.calls) == 1
        assert report.segment_risks[0].road_quality.score == 60
        assert report.segment_risks[0].weather.score == 30

    def test_collaborators_are_not_called_when_fetching_is_disabled(self):
        report = self.service.analyze(
            analysis_request(
                segment_hazards=(STORM,),
                cargo_flags=frozenset({"DANGEROUS"}),
                fetch_hazards=False,
                resolve_rest_stops=False,
            )
        )

        assert self.weather.calls == []
        assert self.roads.calls == []
        assert self.pois.calls == 0
        assert report.segment_risks[0].weather.score == 100
        assert report.segment_risks[1].weather.score == 0
        assert report.segment_risks[1].cargo.score == 50
        assert report.route_risk.peak_segment_index == 0

    def test_weather_outage_degrades_report(self):
        self.weather.error = ExternalCollaboratorUnavailable("openweathermap", "request timed out")

        report = self.service.analyze(analysis_request())

        assert report.degraded is True
        assert report.compliant is False
        assert len(report.rest_stops) == 2
        assert all(segment.weather.score == 0 for segment in report.segment_risks)
        assert report.warnings == (
            {
                "type": "collaborator_unavailable",
                "service": "openweathermap",
                "description": "openweathermap: request timed out",
            },
        )
        assert "Some external data was unavailable" in report.summary

    def test_road_outage_keeps_weather(self):
        self.weather.observation = STORM
        self.roads.error = ExternalCollaboratorUnavailable("road_conditions", "refused")

        report = self.service.analyze(analysis_request())

        assert report.degraded is True
        assert report.segment_risks[0].weather.score == 100
        assert [w["service"] for w in report.warnings] == ["road_conditions"]

    def test_rest_stops_are_matched_to_locations(self):
        self.pois.results = [
            PointOfInterest(
                osm_id=7,
                latitude=53.6,
                longitude=20.0,
                amenity_type=AmenityType.TRUCK_STOP,
                name="Autohof",
                facilities=frozenset({"parking", "toilets"}),
            )
        ]

        report = self.service.analyze(analysis_request(rows=((0, 0), (400, 300))))

        stop = report.rest_stops[0]
        assert stop.location_name == "Autohof"
        assert stop.synthetic is False
        # no fuel price for the matched stop
        assert stop.degraded is True
        assert report.degraded is True

    def test_expired_deadline_skips_lookups_but_finishes_simulation(self):
        deadline = AnalysisDeadline(0)

        report = self.service.analyze(analysis_request(), deadline)

        assert self.weather.calls == []
        assert self.pois.calls == 0
        assert len(report.rest_stops) == 2
        assert report.degraded is True
        assert report.warnings[-1]["type"] == "deadline_expired"

    def test_empty_route_is_rejected(self):
        with pytest.raises(RouteValidationError):
            self.service.analyze(RouteAnalysisRequest(profile=RouteProfile(), driver_state=DutyState.fresh(DEPARTURE)))

    def test_single_point_route_is_compliant(self):
        report = self.service.analyze(analysis_request(rows=((0, 0),)))

        assert report.compliant is True
        assert report.segment_risks == ()
        assert report.route_risk.overall.score == 0

    def test_analyze_many_keeps_input_order(self):
        requests = [
            analysis_request(reference="long"),
            analysis_request(reference="bad", departure_time=minutes_after(DEPARTURE, -60)),
            analysis_request(rows=((0, 0), (50, 40)), reference="short"),
        ]

        results = self.service.analyze_many(requests, max_workers=2)

        assert [getattr(r, "reference", None) for r in results] == ["long", None, "short"]
        assert isinstance(results[1], RouteValidationError)
        assert results[1].field == "departure_time"
        assert results[2].compliant is True

    def test_analyze_many_without_requests(self):
        assert self.service.analyze_many([]) == []

    def test_tired_driver_must_rest_before_departure(self):
        tired = driver_state(daily=600, weekly=600, two_week=600)

        report = self.service.analyze(
            analysis_request(rows=((0, 0), (100, 60)), state=tired, resolve_rest_stops=False)
        )

        assert report.rest_stops[0].requirement.before_departure is True
        assert report.warnings[0]["type"] == "compliance_violation"
        assert "The driver must rest before departure." in report.summary

    def test_report_serialization(self):
        data = self.service.analyze(analysis_request()).to_dict()

        assert data["departure_time"] == DEPARTURE.isoformat()
        assert data["total_distance_km"] == 800
        assert data["total_rest_minutes"] == 90
        assert data["final_state"]["status"] == "AVAILABILITY"
        assert set(data["route_risk"]["factor_scores"]) == {"weather", "road_quality", "traffic", "cargo"}
        assert data["hazard_warnings"] == []

    def test_lookups_receive_the_analysis_deadline(self):
        deadline = AnalysisDeadline(60)

        self.service.analyze(analysis_request(), deadline)

        assert len(self.weather.deadlines) == 2
        assert all(passed is deadline for passed in self.weather.deadlines)

    def test_hazard_warnings_sit_where_the_driver_meets_them(self):
        report = self.service.analyze(
            analysis_request(
                segment_hazards=(HazardObservation(temperature_c=12), STORM),
                fetch_hazards=False,
                resolve_rest_stops=False,
            )
        )

        warnings = report.hazard_warnings
        assert [w.hazard_type for w in warnings] == [
            WeatherHazardType.STRONG_WIND,
            WeatherHazardType.ICE_RISK,
            WeatherHazardType.LOW_VISIBILITY,
            WeatherHazardType.HEAVY_RAIN,
            WeatherHazardType.EXTREME_COLD,
        ]
        assert {w.segment_index for w in warnings} == {1}
        assert all(w.distance_from_start_km == pytest.approx(600.0) for w in warnings)
        # the short break at 270 min is already behind the driver
        assert all(w.expected_time == minutes_after(DEPARTURE, 450 + 45) for w in warnings)
        assert "5 weather hazard warnings along the route, 5 high or severe." in report.summary

        data = report.to_dict()
        assert data["hazard_warnings"][0]["hazard_type"] == "STRONG_WIND"
        assert data["hazard_warnings"][0]["expected_time"] == minutes_after(DEPARTURE, 495).isoformat()

    def test_heavy_vehicle_on_gravel_raises_road_risk(self):
        self.roads.conditions = HazardObservation(
            road_quality=RoadQuality.POOR, traffic_level=TrafficLevel.LOW, road_surface=RoadSurface.GRAVEL
        )

        report = self.service.analyze(
            analysis_request(vehicle=VehicleProfile(height_m=3.0, gross_weight_t=32), resolve_rest_stops=False)
        )

        road = report.segment_risks[0].road_quality
        assert road.score == 84
        assert "High risk for a heavy vehicle on a gravel surface." in road.explanation

    def test_heavy_vehicle_looks_up_unknown_surface(self):
        known = HazardObservation(temperature_c=5, road_quality=RoadQuality.GOOD, traffic_level=TrafficLevel.LOW)

        self.service.analyze(
            analysis_request(
                segment_hazards=(known, known),
                vehicle=VehicleProfile(gross_weight_t=32),
                resolve_rest_stops=False,
            )
        )

        assert self.weather.calls == []
        assert len(self.roads.calls) == 2

    def test_high_sided_vehicle_in_wind(self):
        windy = HazardObservation(temperature_c=10, wind_speed_ms=22)

        report = self.service.analyze(
            analysis_request(
                segment_hazards=(windy, windy),
                vehicle=VehicleProfile(height_m=4.0),
                fetch_hazards=False,
                resolve_rest_stops=False,
            )
        )

        assert "Increased rollover risk for a high-sided vehicle." in report.segment_risks[0].weather.explanation
        assert report.hazard_warnings[0].severity == HazardSeverity.HIGH
        assert "high-sided vehicle" in report.hazard_warnings[0].description

    def test_dangerous_cargo_raises_overall_route_risk(self):
        plain = self.service.analyze(
            analysis_request(segment_hazards=(STORM,), fetch_hazards=False, resolve_rest_stops=False)
        )
        dangerous = self.service.analyze(
            analysis_request(
                segment_hazards=(STORM,),
                cargo_flags=frozenset({"DANGEROUS"}),
                fetch_hazards=False,
                resolve_rest_stops=False,
            )
        )

        assert dangerous.route_risk.overall.score > plain.route_risk.overall.score
        assert "Dangerous goods raise the overall route risk." in dangerous.route_risk.overall.explanation
        assert all(
            "dangerous goods" in w.description
            for w in dangerous.hazard_warnings
            if w.severity in (HazardSeverity.HIGH, HazardSeverity.SEVERE)
        )


class FailingSimulator(TripTimeSimulator):
    """Simulator that fails on 50 km routes."""

    def simulate(self, profile, initial_state, departure_time=None):
        if profile.total_distance_km == 50:
            raise ComplianceViolation(driver_state(daily=600), ["daily"])
        return super().simulate(profile, initial_state, departure_time)


class RecordingDeadline(AnalysisDeadline):
    created = []

    def __init__(self, seconds=None, **kwargs):
        super().__init__(seconds, **kwargs)
        RecordingDeadline.created.append((threading.current_thread().name, seconds))


class TestAnalyzeMany:
    def setup_method(self):
        RecordingDeadline.created = []
        self.service = RouteAnalysisService(
            weather_service=FakeWeatherService(),
            road_conditions_service=FakeRoadConditionsService(),
            poi_service=FakePOIService(),
            fuel_service=FakeFuelService(),
            simulator=FailingSimulator(),
        )

    def test_unexpected_error_becomes_failed_entry(self):
        requests = [
            analysis_request(reference="long", resolve_rest_stops=False),
            analysis_request(rows=((0, 0), (50, 40)), reference="broken"),
            analysis_request(rows=((0, 0), (60, 40)), reference="short"),
        ]

        results = self.service.analyze_many(requests, max_workers=2)

        assert isinstance(results[0], ComplianceReport)
        assert isinstance(results[1], RouteAnalysisFailed)
        assert results[1].reference == "broken"
        assert results[1].to_dict()["error"] == "analysis_failed"
        assert "daily driving limit reached" in results[1].to_dict()["details"]
        assert results[2].reference == "short"

    def test_budgets_start_on_the_worker(self, monkeypatch):
        monkeypatch.setattr("routes.services.route_analyzer.AnalysisDeadline", RecordingDeadline)
        requests = [analysis_request(rows=((0, 0), (60, 40)), reference=str(i)) for i in range(3)]

        results = self.service.analyze_many(requests, max_workers=2, timeout_seconds=30)

        assert all(isinstance(result, ComplianceReport) for result in results)
        assert len(RecordingDeadline.created) == 3
        assert all(name.startswith("route-analysis") for name, _ in RecordingDeadline.created)
        assert all(seconds == 30 for _, seconds in RecordingDeadline.created)
