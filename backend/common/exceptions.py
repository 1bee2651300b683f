"""
Shared exception taxonomy for the route compliance backend.

- RouteValidationError: malformed input, fatal for the request.
- ComplianceViolation: a driving transition with no legal capacity left.
  Reported as a structured warning, never as a hard failure.
- ExternalCollaboratorUnavailable: a weather/POI/fuel/routing lookup failed.
  Always recovered locally with degraded output.
- RouteAnalysisFailed: one analysis of a batch broke unexpectedly; it is
  reported in place so the rest of the batch survives.
"""

from typing import Dict, Iterable, Optional


class RouteValidationError(ValueError):
    """Raised when route or duty data is malformed."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict:
        payload = {"error": "validation_error", "details": str(self)}
        if self.field:
            payload["field"] = self.field
        return payload


class ComplianceViolation(Exception):
    """
    Raised when a transition into DRIVING is requested while one or more
    driving ceilings are already exhausted.

    Attributes:
        state: The duty state snapshot at the moment of the request
        ceilings: Names of the exhausted ceilings (continuous, daily, ...)
    """

    def __init__(self, state, ceilings: Iterable[str], message: str = ""):
        self.state = state
        self.ceilings = tuple(ceilings)
        if not message:
            message = (
                "Driving not allowed: "
                + ", ".join(self.ceilings)
                + " driving limit reached"
            )
        super().__init__(message)

    def to_warning(self) -> Dict:
        return {
            "type": "compliance_violation",
            "ceilings": list(self.ceilings),
            "description": str(self),
            "status": str(self.state.status),
            "status_start_time": self.state.status_start_time.isoformat(),
        }


class ExternalCollaboratorUnavailable(Exception):
    """Raised when an external lookup fails, times out or is not configured."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class RouteAnalysisFailed(Exception):
    """Stands in for the report of a batched analysis that raised."""

    def __init__(self, message: str, reference: Optional[str] = None):
        super().__init__(message)
        self.reference = reference

    def to_dict(self) -> Dict:
        return {"error": "analysis_failed", "details": str(self), "reference": self.reference}
