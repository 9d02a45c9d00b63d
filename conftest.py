from django.core.cache import cache
import pytest


@pytest.fixture(autouse=True)
def _reset_rate_limits(settings):
    """Throttle and ratelimit counters live in the cache; start every test clean."""
    settings.RATELIMIT_ENABLE = False
    cache.clear()
    yield
    cache.clear()
