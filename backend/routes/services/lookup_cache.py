"""
Shared cache for external collaborator lookups.

Keys are built from the service name, coordinates rounded to a fixed
precision and the hour bucket of the lookup, so nearby requests within the
same hour reuse one answer. Entries expire after LOOKUP_CACHE_TTL seconds
and are stored on the `external_lookups` cache alias.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from django.conf import settings
from django.core.cache import caches
from django.core.cache.backends.base import InvalidCacheBackendError
from django.utils import timezone

from common.validators import hour_bucket, round_coordinate

logger = logging.getLogger(__name__)

CACHE_ALIAS = "external_lookups"
DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_PRECISION = 2

_MISSING = object()


class LookupCache:
    """
    Read-through cache keyed by (service, rounded coordinates, hour bucket).

    Args:
        alias: Django cache alias; falls back to `default` when not configured
        ttl: Entry lifetime in seconds
        precision: Decimal places kept when rounding coordinates
    """

    def __init__(self, alias: str = CACHE_ALIAS, ttl: Optional[int] = None, precision: Optional[int] = None):
        self.ttl = ttl if ttl is not None else getattr(settings, "LOOKUP_CACHE_TTL", DEFAULT_TTL_SECONDS)
        self.precision = (
            precision
            if precision is not None
            else getattr(settings, "LOOKUP_CACHE_PRECISION", DEFAULT_PRECISION)
        )
        try:
            self.backend = caches[alias]
        except InvalidCacheBackendError:
            logger.warning(f"Cache alias '{alias}' not configured, using default cache")
            self.backend = caches["default"]

    def make_key(self, service: str, latitude, longitude, at: Optional[datetime] = None, extra: str = "") -> str:
        at = at or timezone.now()
        key = (
            f"lookup:{service}:{round_coordinate(latitude, self.precision)}:"
            f"{round_coordinate(longitude, self.precision)}:{hour_bucket(at)}"
        )
        if extra:
            key = f"{key}:{extra}"
        return key

    def get_or_fetch(
        self,
        service: str,
        latitude,
        longitude,
        fetch: Callable[[], object],
        at: Optional[datetime] = None,
        extra: str = "",
    ):
        """
        Return the cached value for the key, calling `fetch` on a miss.

        Exceptions raised by `fetch` propagate and nothing is cached.
        """
        key = self.make_key(service, latitude, longitude, at, extra)
        cached = self.backend.get(key, _MISSING)
        if cached is not _MISSING:
            logger.debug(f"Cache hit for {key}")
            return cached

        value = fetch()
        self.backend.set(key, value, timeout=self.ttl)
        logger.debug(f"Cached {key} for {self.ttl}s")
        return value

    def clear(self):
        self.backend.clear()
