"""
Time budgets for route analyses.

A deadline is checked before every external call; once it has passed
callers skip the call and fall back to degraded output instead. Calls
already under way get a transport timeout no longer than the time left,
so an expired analysis is never held up by a slow collaborator.
"""

import time
from typing import Callable, Optional

from common.exceptions import ExternalCollaboratorUnavailable


class AnalysisDeadline:
    """
    Wall-clock budget for one analysis.

    Args:
        seconds: Budget in seconds, None for no limit
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(self, seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def unbounded(cls) -> "AnalysisDeadline":
        return cls(None)

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self._clock() >= self.expires_at

    def remaining_seconds(self) -> Optional[float]:
        """Seconds left, or None when unbounded."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    def timeout_for(self, default: float) -> float:
        """Request timeout bounded by the time left."""
        remaining = self.remaining_seconds()
        return default if remaining is None else min(default, remaining)


def bounded_timeout(deadline: Optional[AnalysisDeadline], default: float, service: str) -> float:
    """
    Transport timeout for one outbound call made under `deadline`.

    Raises:
        ExternalCollaboratorUnavailable: If the deadline leaves no time
    """
    if deadline is None:
        return default
    timeout = deadline.timeout_for(default)
    if timeout <= 0:
        raise ExternalCollaboratorUnavailable(service, "analysis deadline expired")
    return timeout
