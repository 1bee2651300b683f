"""
Tests for the duty status state machine.
"""

import pytest

from common.exceptions import ComplianceViolation, RouteValidationError
from common.tests.factories import DEPARTURE, driver_state, minutes_after
from hos_compliance.duty_state import DutyEvent, DutyState, DutyStatus
from hos_compliance.policy import RestRegulationPolicy
from hos_compliance.services import DrivingStateTracker, next_state


class TestDrivingAccumulation:
    def setup_method(self):
        self.tracker = DrivingStateTracker(RestRegulationPolicy())

    def test_driving_adds_elapsed_minutes_to_every_accumulator(self):
        state = self.tracker.transition(
            DutyState.fresh(DEPARTURE), DutyEvent(DutyStatus.DRIVING, DEPARTURE)
        )
        state = self.tracker.transition(
            state, DutyEvent(DutyStatus.OTHER_WORK, minutes_after(DEPARTURE, 120))
        )

        assert state.status == DutyStatus.OTHER_WORK
        assert state.status_start_time == minutes_after(DEPARTURE, 120)
        assert state.accumulators == {
            "continuous": 120,
            "daily": 120,
            "weekly": 120,
            "two_week": 120,
        }

    def test_project_keeps_status_and_start_time(self):
        state = driver_state(status=DutyStatus.DRIVING, continuous=10, daily=10, weekly=10, two_week=10)

        projected = self.tracker.project(state, minutes_after(DEPARTURE, 30))

        assert projected.status == DutyStatus.DRIVING
        assert projected.status_start_time == DEPARTURE
        assert projected.continuous_driving_minutes == pytest.approx(40)

    def test_neutral_statuses_neither_accumulate_nor_reset(self):
        state = driver_state(status=DutyStatus.OTHER_WORK, continuous=100, daily=200, weekly=300, two_week=400)

        after = self.tracker.transition(
            state, DutyEvent(DutyStatus.AVAILABILITY, minutes_after(DEPARTURE, 3000))
        )

        assert after.accumulators == state.accumulators

    def test_remaining_capacity_of_fresh_driver_equals_ceilings(self, policy):
        capacity = self.tracker.remaining_capacity(DutyState.fresh(DEPARTURE))

        assert capacity == {name: float(limit) for name, limit in policy.ceilings.items()}
        assert self.tracker.remaining_driving_minutes(DutyState.fresh(DEPARTURE)) == 270

    def test_apply_replays_events_in_order(self):
        events = [
            DutyEvent(DutyStatus.DRIVING, DEPARTURE),
            DutyEvent(DutyStatus.REST_BREAK, minutes_after(DEPARTURE, 200)),
            DutyEvent(DutyStatus.DRIVING, minutes_after(DEPARTURE, 245)),
            DutyEvent(DutyStatus.OFF_DUTY, minutes_after(DEPARTURE, 305)),
        ]

        state = self.tracker.apply(DutyState.fresh(DEPARTURE), events)

        assert state.continuous_driving_minutes == pytest.approx(60)
        assert state.daily_driving_minutes == pytest.approx(260)

    def test_next_state_matches_tracker(self):
        state = DutyState.fresh(DEPARTURE)
        event = DutyEvent(DutyStatus.DRIVING, minutes_after(DEPARTURE, 5))

        assert next_state(state, event) == self.tracker.transition(state, event)


class TestRestCredit:
    """Rest credit depends on both the rest status and its duration."""

    def setup_method(self):
        self.tracker = DrivingStateTracker(RestRegulationPolicy())
        # Drives 60 more minutes before resting: 160 / 360 / 1060 / 2060
        self.driving = driver_state(
            status=DutyStatus.DRIVING, continuous=100, daily=300, weekly=1000, two_week=2000
        )

    @pytest.mark.parametrize(
        "rest_status, rest_minutes, expected",
        [
            (DutyStatus.REST_BREAK, 45, (0, 360, 1060, 2060)),
            (DutyStatus.REST_BREAK, 30, (160, 360, 1060, 2060)),
            (DutyStatus.REST_BREAK, 700, (0, 360, 1060, 2060)),
            (DutyStatus.DAILY_REST, 660, (0, 0, 1060, 2060)),
            (DutyStatus.DAILY_REST, 600, (0, 360, 1060, 2060)),
            (DutyStatus.WEEKLY_REST, 2700, (0, 0, 0, 1060)),
            (DutyStatus.WEEKLY_REST, 5400, (0, 0, 0, 0)),
            (DutyStatus.OFF_DUTY, 3000, (160, 360, 1060, 2060)),
            (DutyStatus.AVAILABILITY, 700, (160, 360, 1060, 2060)),
        ],
    )
    def test_rest_resets_only_what_its_status_covers(self, rest_status, rest_minutes, expected):
        resting = self.tracker.transition(
            self.driving, DutyEvent(rest_status, minutes_after(DEPARTURE, 60))
        )
        after = self.tracker.transition(
            resting, DutyEvent(DutyStatus.OTHER_WORK, minutes_after(DEPARTURE, 60 + rest_minutes))
        )

        assert (
            after.continuous_driving_minutes,
            after.daily_driving_minutes,
            after.weekly_driving_minutes,
            after.two_week_driving_minutes,
        ) == pytest.approx(expected)


class TestTransitionGuards:
    def setup_method(self):
        self.tracker = DrivingStateTracker(RestRegulationPolicy())

    def test_driving_with_exhausted_daily_limit_is_refused(self):
        state = driver_state(status=DutyStatus.DRIVING, continuous=100, daily=590, weekly=590, two_week=590)
        resting = self.tracker.transition(
            state, DutyEvent(DutyStatus.REST_BREAK, minutes_after(DEPARTURE, 10))
        )

        with pytest.raises(ComplianceViolation) as excinfo:
            self.tracker.transition(
                resting, DutyEvent(DutyStatus.DRIVING, minutes_after(DEPARTURE, 55))
            )

        assert excinfo.value.ceilings == ("daily",)
        assert excinfo.value.state.daily_driving_minutes == pytest.approx(600)
        warning = excinfo.value.to_warning()
        assert warning["type"] == "compliance_violation"
        assert warning["ceilings"] == ["daily"]

    def test_driving_after_qualifying_break_is_allowed(self):
        state = driver_state(status=DutyStatus.DRIVING, continuous=270, daily=270, weekly=270, two_week=270)
        resting = self.tracker.transition(state, DutyEvent(DutyStatus.REST_BREAK, DEPARTURE))

        driving = self.tracker.transition(
            resting, DutyEvent(DutyStatus.DRIVING, minutes_after(DEPARTURE, 45))
        )

        assert driving.status == DutyStatus.DRIVING
        assert driving.continuous_driving_minutes == 0

    def test_non_driving_transition_with_exhausted_limit_is_allowed(self):
        state = driver_state(status=DutyStatus.DRIVING, continuous=270, daily=600, weekly=600, two_week=600)

        after = self.tracker.transition(state, DutyEvent(DutyStatus.OTHER_WORK, DEPARTURE))

        assert after.status == DutyStatus.OTHER_WORK
        assert not self.tracker.can_drive(after)

    def test_event_before_current_status_is_rejected(self):
        state = driver_state(status=DutyStatus.OFF_DUTY)

        with pytest.raises(RouteValidationError) as excinfo:
            self.tracker.transition(state, DutyEvent(DutyStatus.DRIVING, minutes_after(DEPARTURE, -1)))

        assert excinfo.value.field == "at"

    def test_same_status_is_a_no_op(self):
        state = driver_state(status=DutyStatus.DRIVING, continuous=30, daily=30, weekly=30, two_week=30)

        after = self.tracker.transition(state, DutyEvent(DutyStatus.DRIVING, minutes_after(DEPARTURE, 90)))

        assert after is state

    def test_unknown_status_is_rejected(self):
        with pytest.raises(RouteValidationError) as excinfo:
            self.tracker.transition(DutyState.fresh(DEPARTURE), DutyEvent("SLEEPING", DEPARTURE))

        assert excinfo.value.field == "status"

    @pytest.mark.parametrize(
        "ceilings, expected",
        [
            (["continuous"], DutyStatus.REST_BREAK),
            (["continuous", "daily"], DutyStatus.DAILY_REST),
            (["daily", "weekly"], DutyStatus.WEEKLY_REST),
            (["two_week"], DutyStatus.WEEKLY_REST),
        ],
    )
    def test_longest_rest_wins(self, ceilings, expected):
        assert self.tracker.required_rest_status(ceilings) == expected

    def test_required_rest_needs_a_ceiling(self):
        with pytest.raises(ValueError):
            self.tracker.required_rest_status([])

    def test_policy_from_settings_ignores_unknown_keys(self, settings):
        settings.RTO_POLICY = {"short_break_minutes": 30, "unknown": 1}

        policy = RestRegulationPolicy.from_settings()

        assert policy.short_break_minutes == 30
        assert policy.max_daily_driving_minutes == 600

    def test_policy_rejects_non_positive_values(self):
        with pytest.raises(ValueError):
            RestRegulationPolicy(short_break_minutes=0)
