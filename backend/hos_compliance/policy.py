"""
Regulatory policy for the labor and rest regime (RTO/HOS).

Break/rest durations and driving ceilings are configuration, not logic:
the defaults below can be overridden through the RTO_POLICY Django setting
or by injecting a policy object into the engine services.
"""

from dataclasses import asdict, dataclass, fields
from typing import Dict

from django.conf import settings


@dataclass(frozen=True)
class RestRegulationPolicy:
    """
    Driving ceilings and qualifying rest durations, all in minutes.

    Attributes:
        max_continuous_driving_minutes: Driving allowed before a break
        max_daily_driving_minutes: Driving allowed between daily rests
        max_weekly_driving_minutes: Driving allowed between weekly rests
        max_two_week_driving_minutes: Driving allowed over two consecutive weeks
        short_break_minutes: Break that resets continuous driving
        daily_rest_minutes: Rest that resets the daily accumulator
        weekly_rest_minutes: Rest that resets the weekly accumulator
    """

    max_continuous_driving_minutes: int = 270
    max_daily_driving_minutes: int = 600
    max_weekly_driving_minutes: int = 3360
    max_two_week_driving_minutes: int = 5400
    short_break_minutes: int = 45
    daily_rest_minutes: int = 660
    weekly_rest_minutes: int = 2700

    def __post_init__(self):
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None or value <= 0:
                raise ValueError(f"RTO policy value {item.name} must be positive, got {value}")

    @classmethod
    def from_settings(cls) -> "RestRegulationPolicy":
        """Build the policy from the RTO_POLICY setting, unknown keys ignored."""
        configured = getattr(settings, "RTO_POLICY", {}) or {}
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in configured.items() if key in known})

    @property
    def ceilings(self) -> Dict[str, int]:
        """Ceiling per accumulator name."""
        return {
            "continuous": self.max_continuous_driving_minutes,
            "daily": self.max_daily_driving_minutes,
            "weekly": self.max_weekly_driving_minutes,
            "two_week": self.max_two_week_driving_minutes,
        }

    def to_dict(self) -> Dict:
        return asdict(self)
