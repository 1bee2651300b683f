import pytest
from django.core.cache import caches

from hos_compliance.policy import RestRegulationPolicy


@pytest.fixture(autouse=True)
def clear_caches():
    for cache in caches.all():
        cache.clear()
    yield
    for cache in caches.all():
        cache.clear()


@pytest.fixture
def policy():
    return RestRegulationPolicy()
