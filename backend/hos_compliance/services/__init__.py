"""
HOS Compliance Services Package.

This package contains the business logic services for the driver labor
and rest regime: duty state transitions, trip simulation and rest stop
planning.

Services:
- DrivingStateTracker: Duty status transitions and legal accumulators
- TripTimeSimulator: Mandatory rest scheduling along a route
- RestStopPlanner: Rest stop location resolution
"""

from .driving_state_tracker import DrivingStateTracker, next_state
from .trip_time_simulator import SimulationResult, TripTimeSimulator
from .rest_stop_planner import RestStopPlanner

__all__ = [
    "DrivingStateTracker",
    "next_state",
    "TripTimeSimulator",
    "SimulationResult",
    "RestStopPlanner",
]
